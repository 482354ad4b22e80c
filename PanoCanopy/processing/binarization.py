"""
Sky / non-sky classification of masked hemispheres.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from skimage.filters import threshold_otsu

from .lens import polar_coordinates
from .models import (BinarizationConfig, ChannelMode, CircularRegion, ClassifiedImage,
                     ThresholdMethod)

logger = logging.getLogger(__name__)

# Threshold used when every valid pixel shares a single value
MIDPOINT_THRESHOLD = 128.0

# Each strategy mixes gamma-corrected r, g, b in [0, 1] and declares the
# range of its output, which is stretched onto the 0-255 scale.
ChannelStrategy = Tuple[Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray], Tuple[float, float]]

CHANNEL_STRATEGIES: Dict[ChannelMode, ChannelStrategy] = {
    ChannelMode.RED: (lambda r, g, b: r, (0.0, 1.0)),
    ChannelMode.GREEN: (lambda r, g, b: g, (0.0, 1.0)),
    ChannelMode.BLUE: (lambda r, g, b: b, (0.0, 1.0)),
    ChannelMode.RGB: (lambda r, g, b: (r + g + b) / 3.0, (0.0, 1.0)),
    ChannelMode.LUMA: (lambda r, g, b: 0.3 * r + 0.59 * g + 0.11 * b, (0.0, 1.0)),
    ChannelMode.TWO_BG: (lambda r, g, b: 2.0 * b - g, (-1.0, 2.0)),
}


def gamma_correct(image: np.ndarray, gamma: float) -> np.ndarray:
    """Normalise 8-bit channels to [0, 1] and raise them to 1 / gamma."""
    data = image.astype(np.float64) / 255.0
    return np.power(data, 1.0 / gamma)


def channel_values(image: np.ndarray, config: BinarizationConfig) -> np.ndarray:
    """Gamma-corrected classification channel on the 0-255 scale (uint8)."""
    if image.ndim == 2:
        image = np.repeat(image[:, :, np.newaxis], 3, axis=2)
    corrected = gamma_correct(image[:, :, :3], config.gamma)
    b, g, r = corrected[:, :, 0], corrected[:, :, 1], corrected[:, :, 2]

    mix, (low, high) = CHANNEL_STRATEGIES[config.channel]
    scaled = (mix(r, g, b) - low) / (high - low) * 255.0
    return np.rint(np.clip(scaled, 0.0, 255.0)).astype(np.uint8)


def otsu_threshold(values: np.ndarray) -> float:
    """
    Otsu threshold of 8-bit values, as the lowest value of the upper class.

    The histogram is trimmed to its occupied span so every candidate split
    has two non-empty classes. A single occupied bin has no between-class
    variance and falls back to the scale midpoint.
    """
    counts = np.bincount(np.asarray(values, dtype=np.uint8).ravel(), minlength=256)
    occupied = np.flatnonzero(counts)
    if occupied.size < 2:
        return MIDPOINT_THRESHOLD

    low, high = occupied[0], occupied[-1]
    centers = np.arange(low, high + 1)
    split = threshold_otsu(hist=(counts[low:high + 1], centers))
    return float(split) + 1.0


def _zonal_thresholds(values: np.ndarray, valid: np.ndarray, zone: np.ndarray,
                      zones: int) -> Tuple[np.ndarray, Tuple[float, ...]]:
    sky = np.zeros(values.shape, dtype=bool)
    thresholds = []
    for index in range(zones):
        in_zone = valid & (zone == index)
        if not np.any(in_zone):
            thresholds.append(float('nan'))
            continue
        threshold = otsu_threshold(values[in_zone])
        sky[in_zone] = values[in_zone] >= threshold
        thresholds.append(threshold)
    return sky, tuple(thresholds)


def binarize(hemisphere: np.ndarray, config: Optional[BinarizationConfig] = None,
             region: Optional[CircularRegion] = None) -> ClassifiedImage:
    """
    Classify every pixel inside the circular region as sky or non-sky.

    Args:
        hemisphere: Masked hemisphere (BGR)
        config: Channel, gamma and threshold settings
        region: Valid circle; defaults to the inscribed circle

    Returns:
        ClassifiedImage with SKY / CANOPY inside the region and INVALID outside
    """
    config = config or BinarizationConfig()
    height, width = hemisphere.shape[:2]
    if region is None:
        region = CircularRegion(width / 2.0, height / 2.0, min(width, height) / 2.0)

    values = channel_values(hemisphere, config)
    radius, _ = polar_coordinates((height, width), region.xc, region.yc)
    valid = radius <= region.rc

    if config.method is ThresholdMethod.MANUAL:
        threshold = float(config.manual_threshold)
        sky = values >= threshold
    elif config.method is ThresholdMethod.OTSU:
        threshold = otsu_threshold(values[valid])
        sky = values >= threshold
    else:
        zone = np.minimum((radius / region.rc * config.zonal_rings).astype(int), config.zonal_rings - 1)
        sky, threshold = _zonal_thresholds(values, valid, zone, config.zonal_rings)

    classified = np.full((height, width), ClassifiedImage.INVALID, dtype=np.uint8)
    classified[valid & sky] = ClassifiedImage.SKY
    classified[valid & ~sky] = ClassifiedImage.CANOPY

    logger.debug(f"Binarized {width}x{height} image with {config.method.value} threshold {threshold}")
    return ClassifiedImage(values=classified, threshold=threshold, region=region)


def classified_to_image(classified: ClassifiedImage) -> np.ndarray:
    """Black and white rendering: sky white, canopy and invalid pixels black."""
    return np.where(classified.sky_mask, 255, 0).astype(np.uint8)
