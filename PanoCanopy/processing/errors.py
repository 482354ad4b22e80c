"""
Exception types raised by the canopy processing pipeline.

Configuration, mask and output-directory errors are fatal for a run.
Everything deriving from ImageProcessingError only affects a single image.
"""


class PanoCanopyError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PanoCanopyError):
    """Invalid or inconsistent configuration value."""


class MaskAssetError(PanoCanopyError):
    """The hemisphere mask file is missing or cannot be rasterized."""


class OutputDirectoryError(PanoCanopyError):
    """An output directory could not be created or written to."""


class ImageProcessingError(PanoCanopyError):
    """Failure confined to one input image."""


class ImageDecodeError(ImageProcessingError):
    """The input image could not be read."""


class ProjectionError(ImageProcessingError):
    """The panorama could not be projected to a hemisphere."""


class SamplingError(ImageProcessingError):
    """No valid pixels fell inside the sampling grid."""
