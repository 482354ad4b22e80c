"""
Angular sampling of a binarized hemisphere into zenith rings and azimuth segments.
"""

import logging
from typing import Optional

import numpy as np

from .errors import SamplingError
from .lens import polar_coordinates, radius_to_vza
from .models import ClassifiedImage, GapFractionTable, RingSegmentGrid

logger = logging.getLogger(__name__)


def sample_gap_fraction(classified: ClassifiedImage,
                        grid: Optional[RingSegmentGrid] = None) -> GapFractionTable:
    """
    Count sky and valid pixels in every ring x segment cell.

    Pixels are placed by the view zenith angle of their centre (through the
    grid's lens) and by azimuth, 0 at the top of the image and clockwise.
    Cells are closed below and open above; a VZA equal to end_vza still falls
    in the last ring so a 0-90 grid covers the whole disc.

    Args:
        classified: Output of the binarizer
        grid: Ring and segment layout; defaults to 5 rings x 8 segments over 0-90

    Returns:
        GapFractionTable with per-cell counts

    Raises:
        SamplingError: if no valid pixel falls inside the grid
    """
    grid = grid or RingSegmentGrid()
    region = classified.region
    radius, azimuth = polar_coordinates(classified.values.shape, region.xc, region.yc)
    vza = radius_to_vza(radius / region.rc, grid.lens, grid.max_vza)

    included = classified.valid_mask & (vza >= grid.start_vza) & (vza <= grid.end_vza)
    ring = np.floor((vza[included] - grid.start_vza) / grid.ring_width).astype(np.int64)
    ring = np.minimum(ring, grid.nrings - 1)
    seg = np.floor(azimuth[included] / grid.segment_width).astype(np.int64) % grid.nseg

    n_cells = grid.nrings * grid.nseg
    cell = ring * grid.nseg + seg
    sky = classified.sky_mask[included]
    valid_counts = np.bincount(cell, minlength=n_cells).reshape(grid.nrings, grid.nseg)
    sky_counts = np.bincount(cell[sky], minlength=n_cells).reshape(grid.nrings, grid.nseg)

    table = GapFractionTable(sky_counts=sky_counts.astype(np.int64),
                             valid_counts=valid_counts.astype(np.int64), grid=grid)
    if table.total_valid == 0:
        raise SamplingError(
            f"No valid pixels between {grid.start_vza} and {grid.end_vza} degrees")

    logger.debug(f"Sampled {table.total_valid} pixels into {grid.nrings}x{grid.nseg} cells, "
                 f"gap fraction {table.overall:.4f}")
    return table
