"""
Per-image canopy analysis: panorama -> hemisphere -> mask -> binary -> gap fraction.
"""

import logging
import os
from datetime import datetime
from typing import Optional

import cv2
import numpy as np

from .binarization import binarize
from .canopy_metrics import DEFAULT_SATURATION_PAI, compute_canopy_metrics
from .errors import ConfigurationError, ImageDecodeError, ImageProcessingError, ProjectionError
from .gap_fraction import sample_gap_fraction
from .mask import CircularMask, composite_mask
from .models import (AnalysisOutput, BinarizationConfig, CircularRegion, ProcessingResult,
                     ProjectionParameters, RingSegmentGrid)
from .projection import project_hemisphere

DEFAULT_MASKED_SUFFIX = "hemi_masked.jpg"


def hemi_file_name(image_path: str, suffix: str = DEFAULT_MASKED_SUFFIX) -> str:
    """Name of the masked hemisphere derived from an input panorama."""
    stem = os.path.splitext(os.path.basename(str(image_path)))[0]
    return f"{stem}{suffix}"


class CanopyAnalyzer:
    """Runs the hemisphere pipeline on one panorama at a time."""

    def __init__(self, mask: CircularMask,
                 projection: Optional[ProjectionParameters] = None,
                 binarization: Optional[BinarizationConfig] = None,
                 grid: Optional[RingSegmentGrid] = None,
                 saturation_pai: float = DEFAULT_SATURATION_PAI):
        """Initialize the analyzer with the mask and stage configurations."""
        self.mask = mask
        self.projection = projection or ProjectionParameters()
        self.binarization = binarization or BinarizationConfig()
        self.grid = grid or RingSegmentGrid()
        self.saturation_pai = saturation_pai
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings, mask: Optional[CircularMask] = None) -> "CanopyAnalyzer":
        """Build an analyzer from validated Settings, loading the mask file unless given."""
        if mask is None:
            mask = CircularMask.from_file(settings.get('mask.path'))
        return cls(
            mask=mask,
            projection=settings.projection_parameters(),
            binarization=settings.binarization_config(),
            grid=settings.ring_segment_grid(),
            saturation_pai=settings.get_saturation_pai(),
        )

    def load_panorama(self, image_path: str) -> np.ndarray:
        """Decode a panorama from disk."""
        image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        if image is None:
            raise ImageDecodeError(f"Failed to read image: {image_path}")
        return image

    def analyze_panorama(self, pano: np.ndarray, hemi_file: str,
                         heading: Optional[float] = None) -> AnalysisOutput:
        """Analyze a decoded panorama and return every intermediate product.

        Args:
            pano: Equirectangular panorama (BGR)
            hemi_file: Identifier reported as HemiFile
            heading: Overrides the configured heading for this image

        Returns:
            AnalysisOutput with hemisphere, masked image, classification,
            ring/segment table and canopy report
        """
        projection = self.projection
        if heading is not None:
            # Metadata headings fail the image, not the run
            try:
                projection = ProjectionParameters(heading=heading, interpolation=projection.interpolation)
            except ConfigurationError as e:
                raise ProjectionError(f"Invalid heading for {hemi_file}: {e}")

        hemisphere = project_hemisphere(pano, projection)
        masked = composite_mask(hemisphere, self.mask)
        side = masked.shape[1]
        classified = binarize(masked, self.binarization, CircularRegion.centered(side))
        table = sample_gap_fraction(classified, self.grid)
        report = compute_canopy_metrics(table, hemi_file, self.saturation_pai)

        return AnalysisOutput(hemisphere=hemisphere, masked=masked, classified=classified,
                              table=table, report=report)

    def process_single_image(self, image_path: str, heading: Optional[float] = None,
                             suffix: str = DEFAULT_MASKED_SUFFIX) -> ProcessingResult:
        """
        Process a single image file.

        Failures confined to this image are returned in ProcessingResult.error
        instead of being raised.
        """
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            pano = self.load_panorama(image_path)
            output = self.analyze_panorama(pano, hemi_file_name(image_path, suffix), heading)
        except (ImageProcessingError, cv2.error) as e:
            self.logger.error(f"Error processing {image_path}: {str(e)}")
            return ProcessingResult(image_path=str(image_path), timestamp=timestamp, error=str(e))

        return ProcessingResult(image_path=str(image_path), timestamp=timestamp,
                                report=output.report, output=output)
