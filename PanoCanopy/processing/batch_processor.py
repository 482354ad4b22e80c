#!/usr/bin/env python
"""
Batch driver for panorama canopy analysis.

Processes every panorama of a directory in enumeration order, persists the
masked hemisphere and binary image of each success, and rewrites the report
after every image. A failing image is logged and skipped; configuration and
output-directory errors stop the run.
"""

import logging
import os
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from .binarization import classified_to_image
from .canopy_analysis import DEFAULT_MASKED_SUFFIX, CanopyAnalyzer
from .data_manager import DataManager
from .metadata import DEFAULT_FIELDS, read_image_metadata
from .models import ProcessingResult
from .plotting import save_gap_fraction_figure
from .utils import ensure_directory, get_image_files, write_image


@dataclass
class BatchSummary:
    """Successful results in input order, failures, and the report location."""
    results: List[ProcessingResult] = field(default_factory=list)
    failures: List[ProcessingResult] = field(default_factory=list)
    report_path: Optional[str] = None

    @property
    def processed(self) -> int:
        return len(self.results) + len(self.failures)


def _process_image_worker(core: "BatchProcessorCore", image_path: str) -> ProcessingResult:
    return core.process_image(image_path)


class BatchProcessorCore:
    """Core batch processing functionality without GUI."""

    def __init__(self, analyzer: CanopyAnalyzer, output_dir, settings=None):
        """Initialize the batch processor core.

        Args:
            analyzer: CanopyAnalyzer instance
            output_dir: Path to output directory
            settings: Optional Settings with the output section
        """
        self.analyzer = analyzer
        self.output_dir = ensure_directory(output_dir)
        self.logger = logging.getLogger(__name__)

        get = settings.get if settings is not None else (lambda key, default=None: default)
        self.masked_dir = self.output_dir / get('output.masked_dir', 'masked_hemispheres')
        self.masked_suffix = get('output.masked_suffix', DEFAULT_MASKED_SUFFIX)
        self.results_dir = self.output_dir / get('output.results_dir', 'results')
        self.export_binary = get('output.export_binary', True)
        self.save_diagnostics = get('output.save_diagnostics', False)
        self.diagnostics_dir = self.output_dir / get('output.diagnostics_dir', 'diagnostics')
        self.heading_from_metadata = get('projection.heading_from_metadata', False)
        self.metadata_fields = settings.metadata_fields() if settings is not None else DEFAULT_FIELDS
        self.max_workers = settings.get_max_workers() if settings is not None else 1

        self.data_manager = DataManager(self.output_dir / get('output.report_file', 'canopy_output.csv'))

    def process_image(self, image_path) -> ProcessingResult:
        """Process a single image and persist its artifacts.

        Args:
            image_path: Path to image file

        Returns:
            ProcessingResult; error is set when the image could not be processed
        """
        image_path = str(image_path)
        fields = self.metadata_fields
        if self.heading_from_metadata and 'PoseHeadingDegrees' not in fields:
            fields = fields + ('PoseHeadingDegrees',)
        metadata = read_image_metadata(image_path, fields)
        heading = metadata.get('PoseHeadingDegrees') if self.heading_from_metadata else None

        result = self.analyzer.process_single_image(image_path, heading=heading, suffix=self.masked_suffix)
        result.metadata = metadata
        if not result.ok:
            return result

        output = result.output
        # The decoded raster is authoritative for the pano width
        if 'ImageWidth' in metadata:
            metadata['ImageWidth'] = output.hemisphere.shape[1]

        hemi_file = output.report.hemi_file
        result.masked_path = write_image(self.masked_dir / hemi_file, output.masked)
        if self.export_binary:
            binary_name = f"{os.path.splitext(hemi_file)[0]}_bin.png"
            result.binary_path = write_image(self.results_dir / binary_name,
                                             classified_to_image(output.classified))
        if self.save_diagnostics:
            ensure_directory(self.diagnostics_dir)
            figure_name = f"{os.path.splitext(hemi_file)[0]}_gapfrac.png"
            save_gap_fraction_figure(output, str(self.diagnostics_dir / figure_name))

        result.output = None
        return result

    def process_directory(self, input_dir) -> BatchSummary:
        """Process all images in a directory.

        Args:
            input_dir: Path to directory containing images

        Returns:
            BatchSummary of the run
        """
        image_paths = get_image_files(input_dir)
        self.logger.info(f"Found {len(image_paths)} images in {input_dir}")
        return self.process_batch(image_paths)

    def process_batch(self, image_paths: List[str]) -> BatchSummary:
        """Process images in order; results are reported in input order."""
        summary = BatchSummary(report_path=str(self.data_manager.report_path))
        total = len(image_paths)
        if total == 0:
            return summary

        start = time.monotonic()
        if self.max_workers > 1:
            with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(_process_image_worker, self, path) for path in image_paths]
                for index, future in enumerate(futures, start=1):
                    self._collect(future.result(), summary)
                    # Workers overlap; log the run average only
                    self._log_progress(index, total, None, start)
        else:
            for index, image_path in enumerate(image_paths, start=1):
                image_start = time.monotonic()
                self._collect(self.process_image(image_path), summary)
                self._log_progress(index, total, image_start, start)

        self.logger.info(f"Processed {len(summary.results)} of {total} images "
                         f"({len(summary.failures)} failed); report at {summary.report_path}")
        return summary

    def _collect(self, result: ProcessingResult, summary: BatchSummary):
        if result.ok:
            summary.results.append(result)
            self.data_manager.add_result(result.as_record())
        else:
            self.logger.warning(f"Skipping {result.image_path}: {result.error}")
            summary.failures.append(result)

    def _log_progress(self, index: int, total: int, image_start: Optional[float], run_start: float):
        now = time.monotonic()
        average = (now - run_start) / index
        if image_start is None:
            self.logger.info(f"Completed {index} of {total} images "
                             f"(average {average:.1f} seconds per image).")
        else:
            self.logger.info(f"Completed {index} of {total} images in {now - image_start:.0f} seconds.")
        self.logger.info(f"Estimated {(total - index) * average / 60:.1f} minutes remaining.")
