"""
Diagnostic figure of the binarized hemisphere with the sampling grid.
"""

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend for saving figures
import matplotlib.pyplot as plt

from .binarization import classified_to_image
from .lens import vza_to_radius
from .models import AnalysisOutput


def save_gap_fraction_figure(output: AnalysisOutput, output_path: str) -> str:
    """Save masked hemisphere, binary image with ring/segment overlay and ring gap fractions."""
    classified = output.classified
    table = output.table
    grid = table.grid
    region = classified.region

    fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 6))

    ax1.imshow(output.masked[:, :, ::-1])
    ax1.set_title("Masked Hemisphere")
    ax1.axis('off')

    ax2.imshow(classified_to_image(classified), cmap='gray', vmin=0, vmax=255)
    ring_radii = vza_to_radius(grid.ring_edges, grid.lens, grid.max_vza) * region.rc
    # Image pixel (i, j) spans [j, j+1); imshow draws pixel centres at integers
    xc, yc = region.xc - 0.5, region.yc - 0.5
    for radius in ring_radii:
        ax2.add_patch(plt.Circle((xc, yc), radius, fill=False, color='red', linewidth=0.8))
    inner, outer = ring_radii[0], ring_radii[-1]
    for k in range(grid.nseg):
        azimuth = np.radians(k * grid.segment_width)
        dx, dy = np.sin(azimuth), -np.cos(azimuth)
        ax2.plot([xc + inner * dx, xc + outer * dx], [yc + inner * dy, yc + outer * dy],
                 color='red', linewidth=0.8)
    ax2.set_title(f"Binary Image (threshold {classified.threshold})")
    ax2.axis('off')

    ax3.plot(grid.ring_centers, table.ring_gap_fractions(), marker='o')
    ax3.set_xlabel("View zenith angle (degrees)")
    ax3.set_ylabel("Gap fraction")
    ax3.set_ylim(0, 1)
    ax3.set_title("Gap Fraction per Ring")

    report = output.report
    plt.figtext(0.5, 0.01,
                f"GF: {report.gap_fraction:.3f}   Le: {report.le:.2f}   "
                f"LX: {report.lx:.2f}   DIFN: {report.difn:.1f}%",
                ha="center", fontsize=12, bbox={"facecolor": "white", "alpha": 0.5, "pad": 5})

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return str(output_path)
