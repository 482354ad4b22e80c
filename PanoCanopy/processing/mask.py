"""
Hemisphere mask loading, rasterization and compositing.

A mask is drawn on a white page; pixels that stay white are treated as
transparent and mark the inside of the hemisphere. Everything painted over
is outside and gets flattened to black on the composited image.
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .errors import MaskAssetError, ProjectionError
from .lens import polar_coordinates

logger = logging.getLogger(__name__)


# Raster masks: channel level at or above which a pixel counts as white
RASTER_WHITE_LEVEL = 250

_NAMED_COLOURS = {
    'white': (255, 255, 255),
    'black': (0, 0, 0),
    'none': None,
    'transparent': None,
}


def parse_colour(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Parse an SVG fill value into an RGB tuple, None for no fill."""
    if value is None:
        return (0, 0, 0)
    value = value.strip().lower()
    if value in _NAMED_COLOURS:
        return _NAMED_COLOURS[value]
    if re.fullmatch(r'#[0-9a-f]{3}', value):
        return tuple(int(c * 2, 16) for c in value[1:])
    if re.fullmatch(r'#[0-9a-f]{6}', value):
        return tuple(int(value[i:i + 2], 16) for i in (1, 3, 5))
    match = re.fullmatch(r'rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)', value)
    if match:
        return tuple(int(c) for c in match.groups())
    raise MaskAssetError(f"Unsupported fill colour '{value}' in mask")


def _length(value: Optional[str], default: float = 0.0) -> float:
    if value is None:
        return default
    match = re.match(r'\s*([-+]?\d*\.?\d+(?:e[-+]?\d+)?)', value, re.IGNORECASE)
    if not match:
        raise MaskAssetError(f"Cannot parse length '{value}' in mask")
    return float(match.group(1))


def _fill_of(element: ET.Element) -> Optional[str]:
    style = element.get('style', '')
    match = re.search(r'fill\s*:\s*([^;]+)', style)
    if match:
        return match.group(1)
    return element.get('fill')


class CircularMask:
    """Vector or raster hemisphere mask, rasterized on demand per size."""

    def __init__(self, shapes: List[Dict] = None, page: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0),
                 raster: Optional[np.ndarray] = None, source: str = "<memory>"):
        self.shapes = shapes or []
        self.page = page
        self.raster = raster
        self.source = source
        self._cache: Dict[int, np.ndarray] = {}

    @classmethod
    def circle(cls) -> "CircularMask":
        """Black page with a white inscribed circle."""
        shapes = [
            {'kind': 'rect', 'x': 0.0, 'y': 0.0, 'width': 1.0, 'height': 1.0, 'white': False},
            {'kind': 'ellipse', 'cx': 0.5, 'cy': 0.5, 'rx': 0.5, 'ry': 0.5, 'white': True},
        ]
        return cls(shapes=shapes, source="<circle>")

    @classmethod
    def from_file(cls, path: str) -> "CircularMask":
        """Load a mask from an SVG or raster image file."""
        if not path or not os.path.isfile(path):
            raise MaskAssetError(f"Mask file not found: {path}")
        if os.path.splitext(path)[1].lower() == '.svg':
            return cls._from_svg(path)

        raster = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if raster is None:
            raise MaskAssetError(f"Could not read mask image: {path}")
        logger.info(f"Loaded raster mask {path} ({raster.shape[1]}x{raster.shape[0]})")
        return cls(raster=raster, source=str(path))

    @classmethod
    def _from_svg(cls, path: str) -> "CircularMask":
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as e:
            raise MaskAssetError(f"Could not parse mask SVG {path}: {e}")

        view_box = root.get('viewBox')
        if view_box:
            page = tuple(float(v) for v in re.split(r'[\s,]+', view_box.strip()))
            if len(page) != 4:
                raise MaskAssetError(f"Malformed viewBox '{view_box}' in {path}")
        else:
            page = (0.0, 0.0, _length(root.get('width')), _length(root.get('height')))
        if page[2] <= 0 or page[3] <= 0:
            raise MaskAssetError(f"Mask SVG {path} has no usable size")

        shapes = []
        for element in root.iter():
            tag = element.tag.split('}')[-1]
            if element.get('transform'):
                raise MaskAssetError(f"Transforms are not supported in mask SVG ({tag} in {path})")
            if tag in ('path', 'polygon', 'polyline', 'line', 'text', 'image'):
                raise MaskAssetError(f"Unsupported element <{tag}> in mask SVG {path}")
            if tag not in ('rect', 'circle', 'ellipse'):
                continue
            colour = parse_colour(_fill_of(element))
            if colour is None:
                continue
            shape = {'kind': tag, 'white': colour == (255, 255, 255)}
            if tag == 'rect':
                shape.update(x=_length(element.get('x')), y=_length(element.get('y')),
                             width=_length(element.get('width')), height=_length(element.get('height')))
            elif tag == 'circle':
                radius = _length(element.get('r'))
                shape.update(kind='ellipse', cx=_length(element.get('cx')), cy=_length(element.get('cy')),
                             rx=radius, ry=radius)
            else:
                shape.update(cx=_length(element.get('cx')), cy=_length(element.get('cy')),
                             rx=_length(element.get('rx')), ry=_length(element.get('ry')))
            shapes.append(shape)

        if not shapes:
            raise MaskAssetError(f"Mask SVG {path} contains no filled shapes")
        logger.info(f"Loaded vector mask {path} with {len(shapes)} shapes")
        return cls(shapes=shapes, page=page, source=str(path))

    def rasterize(self, side: int) -> np.ndarray:
        """Boolean side x side array, True inside the hemisphere."""
        if side < 1:
            raise ValueError(f"Mask side must be positive, got {side}")
        if side not in self._cache:
            if self.raster is not None:
                inside = self._rasterize_raster(side)
            else:
                inside = self._rasterize_vector(side)
            inside.setflags(write=False)
            self._cache[side] = inside
        return self._cache[side]

    def _rasterize_raster(self, side: int) -> np.ndarray:
        resized = cv2.resize(self.raster, (side, side), interpolation=cv2.INTER_NEAREST)
        if resized.ndim == 2:
            return resized >= RASTER_WHITE_LEVEL
        if resized.shape[2] == 4:
            return resized[:, :, 3] == 0
        return np.all(resized[:, :, :3] >= RASTER_WHITE_LEVEL, axis=2)

    def _rasterize_vector(self, side: int) -> np.ndarray:
        min_x, min_y, page_width, page_height = self.page
        sx, sy = side / page_width, side / page_height
        white = np.ones((side, side), dtype=bool)
        # Shapes cover the pixels whose centres they contain
        centres = np.arange(side, dtype=np.float64) + 0.5

        for shape in self.shapes:
            if shape['kind'] == 'rect':
                x0, x1 = (shape['x'] - min_x) * sx, (shape['x'] + shape['width'] - min_x) * sx
                y0, y1 = (shape['y'] - min_y) * sy, (shape['y'] + shape['height'] - min_y) * sy
                cols = (centres >= x0) & (centres < x1)
                rows = (centres >= y0) & (centres < y1)
                covered = rows[:, np.newaxis] & cols[np.newaxis, :]
            else:
                cx, cy = (shape['cx'] - min_x) * sx, (shape['cy'] - min_y) * sy
                rx, ry = shape['rx'] * sx, shape['ry'] * sy
                if rx <= 0 or ry <= 0:
                    continue
                if rx == ry:
                    radius, _ = polar_coordinates((side, side), cx, cy)
                    covered = radius <= rx
                else:
                    dx = (centres[np.newaxis, :] - cx) / rx
                    dy = (centres[:, np.newaxis] - cy) / ry
                    covered = dx ** 2 + dy ** 2 <= 1.0
            white[covered] = shape['white']
        return white


def composite_mask(hemisphere: np.ndarray, mask: CircularMask, fill: int = 0) -> np.ndarray:
    """
    Flatten the outside of the mask to a solid fill.

    Args:
        hemisphere: Square hemisphere image
        mask: Mask rasterized to the hemisphere size
        fill: Background value written to every channel outside the mask

    Returns:
        New image; inside pixels are copied unchanged
    """
    height, width = hemisphere.shape[:2]
    if height != width:
        raise ProjectionError(f"Hemisphere must be square, got {width}x{height}")
    inside = mask.rasterize(width)
    masked = hemisphere.copy()
    masked[~inside] = fill
    return masked
