"""
Lens projection functions.

Each lens maps a zenith angle to a relative image radius through a forward
function f(theta). A pixel at radius fraction r of the image circle, whose rim
sits at max_vza, then has VZA = f^-1(r * f(max_vza)).

Also holds the per-pixel polar geometry shared by the binarizer and the
angular sampler.
"""

from typing import Callable, Dict, Tuple

import numpy as np

from .models import LensType

Projection = Tuple[Callable[[np.ndarray], np.ndarray], Callable[[np.ndarray], np.ndarray]]

LENS_PROJECTIONS: Dict[LensType, Projection] = {
    LensType.EQUIDISTANT: (lambda t: t, lambda r: r),
    LensType.EQUISOLID: (lambda t: np.sin(t / 2.0), lambda r: 2.0 * np.arcsin(r)),
    LensType.STEREOGRAPHIC: (lambda t: np.tan(t / 2.0), lambda r: 2.0 * np.arctan(r)),
    LensType.ORTHOGRAPHIC: (np.sin, np.arcsin),
}


def register_lens(lens: LensType, forward, inverse) -> None:
    """Add or replace the projection used for a lens type."""
    LENS_PROJECTIONS[lens] = (forward, inverse)


def radius_to_vza(radius_fraction: np.ndarray, lens: LensType, max_vza: float = 90.0) -> np.ndarray:
    """Convert radius / image-circle radius into view zenith angle in degrees."""
    forward, inverse = LENS_PROJECTIONS[lens]
    rim = forward(np.radians(max_vza))
    scaled = np.clip(np.asarray(radius_fraction, dtype=np.float64), 0.0, 1.0) * rim
    return np.degrees(inverse(scaled))


def vza_to_radius(vza: np.ndarray, lens: LensType, max_vza: float = 90.0) -> np.ndarray:
    """Radius fraction at which a view zenith angle appears on the image."""
    forward, _ = LENS_PROJECTIONS[lens]
    return forward(np.radians(np.asarray(vza, dtype=np.float64))) / forward(np.radians(max_vza))


def polar_coordinates(shape: Tuple[int, int], xc: float, yc: float) -> Tuple[np.ndarray, np.ndarray]:
    """Radius (pixels) and azimuth (degrees, 0 at the top, clockwise) of every pixel centre."""
    height, width = shape[:2]
    dx = np.arange(width, dtype=np.float64) + 0.5 - xc
    dy = np.arange(height, dtype=np.float64) + 0.5 - yc
    dx, dy = np.meshgrid(dx, dy)
    radius = np.hypot(dx, dy)
    azimuth = np.degrees(np.arctan2(dx, -dy)) % 360.0
    return radius, azimuth
