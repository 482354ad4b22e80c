#!/usr/bin/env python3
"""
Panorama Canopy - command line entry point.

Converts a directory of equirectangular panoramas into masked hemispherical
images and writes a canopy gap fraction report.
"""

import argparse
import logging
import sys
from multiprocessing import freeze_support

from PanoCanopy.config.settings import Settings
from PanoCanopy.processing.batch_processor import BatchProcessorCore
from PanoCanopy.processing.canopy_analysis import CanopyAnalyzer
from PanoCanopy.processing.errors import PanoCanopyError
from PanoCanopy.processing.utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pano-canopy",
        description="Estimate canopy gap fraction from smartphone spherical panoramas.")
    parser.add_argument("input_dir", nargs="?", default="raw_images",
                        help="Directory of equirectangular panoramas (default: raw_images)")
    parser.add_argument("-o", "--output-dir", default=".",
                        help="Directory receiving hemispheres, binary images and the report")
    parser.add_argument("-c", "--config", help="JSON configuration file")
    parser.add_argument("-m", "--mask", help="Hemisphere mask file (overrides mask.path)")
    parser.add_argument("--heading", type=float, help="Heading in degrees (overrides projection.heading)")
    parser.add_argument("--workers", type=int, help="Number of worker processes")
    parser.add_argument("--log-dir", default="logs", help="Directory for app.log")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None):
    """Main application entry point."""
    args = build_parser().parse_args(argv)
    logger = logging.getLogger(__name__)

    try:
        setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

        settings = Settings(args.config)
        if args.mask:
            settings.set('mask.path', args.mask)
        if args.heading is not None:
            settings.set('projection.heading', args.heading)
        if args.workers is not None:
            settings.set('processing.max_workers', args.workers)
        settings.validate()

        analyzer = CanopyAnalyzer.from_settings(settings)
        processor = BatchProcessorCore(analyzer, args.output_dir, settings)
        summary = processor.process_directory(args.input_dir)

    except (PanoCanopyError, FileNotFoundError) as e:
        logger.error(f"Application error: {str(e)}")
        sys.exit(1)

    if summary.failures:
        logger.warning(f"{len(summary.failures)} image(s) could not be processed")
    return 0


if __name__ == '__main__':
    # Required for Windows multiprocessing
    freeze_support()
    main()
