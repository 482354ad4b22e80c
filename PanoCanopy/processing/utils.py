"""
Utility functions for the panorama canopy pipeline.
"""

import os
import logging
from pathlib import Path
from typing import List, Union

import cv2
import numpy as np

from .errors import OutputDirectoryError

PathLike = Union[str, Path]


def get_supported_image_extensions() -> List[str]:
    """
    Get list of supported image extensions.

    Returns:
        List of supported extensions
    """
    return ['.jpg', '.jpeg', '.png', '.tif', '.tiff']


def is_valid_image_file(filepath: PathLike) -> bool:
    """
    Check if file has a supported image extension.

    Args:
        filepath: Path to file

    Returns:
        bool: True if valid image, False otherwise
    """
    return os.path.splitext(str(filepath))[1].lower() in get_supported_image_extensions()


def get_image_files(directory: PathLike) -> List[str]:
    """Image files directly inside directory, sorted by name."""
    directory = str(directory)
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Input directory not found: {directory}")
    image_files = [
        os.path.join(directory, name) for name in os.listdir(directory)
        if os.path.isfile(os.path.join(directory, name)) and is_valid_image_file(name)
    ]
    return sorted(image_files)


def ensure_directory(path: PathLike) -> Path:
    """Create path (and parents) if needed."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(f"Could not create output directory {path}: {e}")
    return path


def write_image(path: PathLike, image: np.ndarray) -> str:
    """Encode image to path, creating the parent directory on demand."""
    path = Path(path)
    ensure_directory(path.parent)
    if not cv2.imwrite(str(path), image):
        raise OutputDirectoryError(f"Could not write image {path}")
    return str(path)


def setup_logging(log_dir: PathLike = "logs", level: int = logging.INFO):
    """Set up logging configuration."""
    log_dir = ensure_directory(log_dir)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / "app.log"),
            logging.StreamHandler()
        ]
    )
