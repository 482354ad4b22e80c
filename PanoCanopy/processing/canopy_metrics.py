"""
Reduction of ring/segment gap fractions into canopy statistics.
"""

import math

import numpy as np

from .models import CanopyReport, GapFractionTable

# Effective plant area index assigned to cells without any gap
DEFAULT_SATURATION_PAI = 8.0


def saturated_gap_fraction(theta: np.ndarray, saturation_pai: float = DEFAULT_SATURATION_PAI) -> np.ndarray:
    """Poisson gap fraction of a saturated cell viewed at theta (radians)."""
    return np.exp(-0.5 * saturation_pai / np.cos(theta))


def _weighted_sum(values: np.ndarray, weights: np.ndarray) -> float:
    total = weights.sum()
    if total <= 0:
        return float('nan')
    return float(np.sum(values * weights) / total)


def compute_canopy_metrics(table: GapFractionTable, hemi_file: str,
                           saturation_pai: float = DEFAULT_SATURATION_PAI) -> CanopyReport:
    """
    Canopy statistics for one image.

    GF is the pooled gap fraction over every sampled pixel. Le follows Miller's
    integral over the ring gap fractions, L uses the log-average over segments
    (Lang & Xiang), LX = Le / L is the clumping index and DIFN is the
    diffuse non-interceptance in percent. Empty rings are left out.
    """
    grid = table.grid
    theta = np.radians(grid.ring_centers)
    used = np.isfinite(table.ring_gap_fractions())
    theta = theta[used]
    ring_gf = table.ring_gap_fractions()[used]
    cell_gf = table.cell_gap_fractions()[used]

    saturated = saturated_gap_fraction(theta, saturation_pai)
    ring_gf_sat = np.where(ring_gf > 0, ring_gf, saturated)
    # Empty cells stay NaN and drop out of the log-average
    cell_gf_sat = np.where(np.isnan(cell_gf) | (cell_gf > 0), cell_gf, saturated[:, np.newaxis])

    # Miller weights, sin(theta) d(theta)
    weights = np.sin(theta) * math.radians(grid.ring_width)
    le = 2.0 * _weighted_sum(-np.log(ring_gf_sat) * np.cos(theta), weights)

    mean_ln_gf = np.array([np.mean(np.log(row[np.isfinite(row)])) for row in cell_gf_sat])
    l = 2.0 * _weighted_sum(-mean_ln_gf * np.cos(theta), weights)

    lx = le / l if l > 0 else float('nan')
    difn = 100.0 * _weighted_sum(ring_gf, np.sin(theta) * np.cos(theta))

    gap_fraction = table.overall
    return CanopyReport(
        hemi_file=hemi_file,
        gap_fraction=gap_fraction,
        canopy_cover=1.0 - gap_fraction,
        le=max(0.0, le),
        l=max(0.0, l),
        lx=lx,
        difn=difn,
        grid=grid,
    )
