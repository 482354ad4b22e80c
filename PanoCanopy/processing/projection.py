"""
Equirectangular panorama to upward hemispherical (polar) projection.
"""

import logging
import math
from typing import Optional

import cv2
import numpy as np

from .errors import ProjectionError
from .models import ProjectionParameters

logger = logging.getLogger(__name__)

INTERPOLATION_FLAGS = {
    'nearest': cv2.INTER_NEAREST,
    'linear': cv2.INTER_LINEAR,
    'cubic': cv2.INTER_CUBIC,
}


def _as_bgr(image: np.ndarray) -> np.ndarray:
    """Return a 3-channel BGR view of a decoded raster."""
    if not isinstance(image, np.ndarray) or image.size == 0:
        raise ProjectionError("Panorama is empty or not an image array")
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise ProjectionError(f"Unsupported panorama shape {image.shape}")


def crop_upper_half(pano: np.ndarray) -> np.ndarray:
    """Keep the above-horizon half of an equirectangular panorama, at least one row."""
    height = pano.shape[0]
    if height < 1:
        raise ProjectionError("Panorama has no rows to crop")
    return pano[:max(1, height // 2)].copy()


def stretch_strip(strip: np.ndarray, interpolation: int = cv2.INTER_LINEAR) -> np.ndarray:
    """Resize to 100% width and 400% height before the polar remap."""
    rows, cols = strip.shape[:2]
    return cv2.resize(strip, (cols, rows * 4), interpolation=interpolation)


def polar_remap(strip: np.ndarray, interpolation: int = cv2.INTER_LINEAR) -> np.ndarray:
    """Wrap a strip around a disc: columns become azimuth, rows become radius.

    The canvas is the best fit square of the disc, whose radius is half the
    smaller strip dimension. Row 0 lands on the centre. The azimuth runs from
    straight down (first column) through +x, matching the unflipped output of
    a polar distortion.
    """
    rows, cols = strip.shape[:2]
    r_max = min(rows, cols) / 2.0
    side = int(math.ceil(2 * r_max))
    center = side / 2.0

    coords = np.arange(side, dtype=np.float64) + 0.5 - center
    dx, dy = np.meshgrid(coords, coords)
    angle = np.arctan2(dx, dy)

    # One wrapped column either side so interpolation is seamless at +-180 degrees
    padded = np.concatenate([strip[:, -1:], strip, strip[:, :1]], axis=1)
    map_x = (angle + np.pi) / (2 * np.pi) * cols - 0.5 + 1
    map_y = np.hypot(dx, dy) * rows / r_max - 0.5

    return cv2.remap(padded, map_x.astype(np.float32), map_y.astype(np.float32),
                     interpolation, borderMode=cv2.BORDER_REPLICATE)


def rotate_bound(image: np.ndarray, degrees: float,
                 interpolation: int = cv2.INTER_LINEAR) -> np.ndarray:
    """Rotate clockwise by degrees, enlarging the canvas to the rotated bounds."""
    if degrees % 360.0 == 0:
        return image.copy()

    height, width = image.shape[:2]
    center = ((width - 1) / 2.0, (height - 1) / 2.0)
    matrix = cv2.getRotationMatrix2D(center, -degrees, 1.0)
    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_width = int(math.ceil(round(height * sin + width * cos, 6)))
    new_height = int(math.ceil(round(height * cos + width * sin, 6)))
    matrix[0, 2] += (new_width - 1) / 2.0 - center[0]
    matrix[1, 2] += (new_height - 1) / 2.0 - center[1]

    return cv2.warpAffine(image, matrix, (new_width, new_height), flags=interpolation,
                          borderMode=cv2.BORDER_CONSTANT, borderValue=0)


def crop_center(image: np.ndarray, side: int) -> np.ndarray:
    """Cut a side x side square around the canvas centre, padding with black."""
    height, width = image.shape[:2]
    out = np.zeros((side, side) + image.shape[2:], dtype=image.dtype)
    top = (height - side) // 2
    left = (width - side) // 2

    src_top, src_left = max(top, 0), max(left, 0)
    src_bottom, src_right = min(top + side, height), min(left + side, width)
    dst_top, dst_left = src_top - top, src_left - left
    out[dst_top:dst_top + src_bottom - src_top,
        dst_left:dst_left + src_right - src_left] = image[src_top:src_bottom, src_left:src_right]
    return out


def project_hemisphere(pano: np.ndarray,
                       params: Optional[ProjectionParameters] = None) -> np.ndarray:
    """
    Turn an equirectangular panorama into a square upward hemisphere.

    Args:
        pano: Decoded panorama (H x W, grayscale, BGR or BGRA)
        params: Heading and interpolation; defaults to heading 0

    Returns:
        W x W BGR image with the zenith at the centre and the horizon at the rim
    """
    params = params or ProjectionParameters()
    pano = _as_bgr(pano)
    pano_width = pano.shape[1]
    interpolation = INTERPOLATION_FLAGS[params.interpolation]

    strip = stretch_strip(crop_upper_half(pano), interpolation)
    disc = cv2.flip(polar_remap(strip, interpolation), 0)
    rotated = rotate_bound(disc, params.heading, interpolation)
    hemisphere = crop_center(rotated, pano_width)

    logger.debug(f"Projected {pano.shape[1]}x{pano.shape[0]} panorama to "
                 f"{pano_width}x{pano_width} hemisphere (heading {params.heading:.1f})")
    return hemisphere
