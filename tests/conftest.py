import pytest
import sys
from pathlib import Path

import cv2
import numpy as np

# Add the project root to Python path
sys.path.append(str(Path(__file__).parent.parent))

from PanoCanopy.config.settings import Settings
from PanoCanopy.processing.lens import polar_coordinates
from PanoCanopy.processing.mask import CircularMask
from PanoCanopy.processing.models import CircularRegion, ClassifiedImage


@pytest.fixture
def project_root():
    """Fixture to provide the repository root."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_mask_path(project_root):
    """Fixture to provide the bundled hemisphere mask."""
    return project_root / "HemiPhotoMask.svg"


@pytest.fixture
def circle_mask():
    """Fixture to provide a mask with a white inscribed circle."""
    return CircularMask.circle()


@pytest.fixture
def test_settings():
    """Fixture to provide the default configuration."""
    return Settings()


@pytest.fixture
def make_pano():
    """Fixture to build uniform equirectangular panoramas (BGR)."""
    def _make(width=64, height=32, colour=(255, 255, 255)):
        pano = np.zeros((height, width, 3), dtype=np.uint8)
        pano[:, :] = colour
        return pano
    return _make


@pytest.fixture
def split_pano():
    """Fixture to provide a 64x32 panorama, left half red and right half blue."""
    pano = np.zeros((32, 64, 3), dtype=np.uint8)
    pano[:, :32] = (0, 0, 255)
    pano[:, 32:] = (255, 0, 0)
    return pano


@pytest.fixture
def make_classified():
    """Fixture to turn a boolean sky array into a ClassifiedImage on the inscribed circle."""
    def _make(sky):
        side = sky.shape[0]
        region = CircularRegion.centered(side)
        radius, _ = polar_coordinates(sky.shape, region.xc, region.yc)
        valid = radius <= region.rc
        values = np.full(sky.shape, ClassifiedImage.INVALID, dtype=np.uint8)
        values[valid & sky] = ClassifiedImage.SKY
        values[valid & ~sky] = ClassifiedImage.CANOPY
        return ClassifiedImage(values=values, threshold=128.0, region=region)
    return _make


@pytest.fixture
def image_dir(tmp_path, make_pano):
    """Fixture to provide a directory with a white, a corrupt and a black panorama."""
    directory = tmp_path / "raw_images"
    directory.mkdir()
    cv2.imwrite(str(directory / "a_white.png"), make_pano(colour=(255, 255, 255)))
    (directory / "b_broken.jpg").write_bytes(b"this is not an image")
    cv2.imwrite(str(directory / "c_black.png"), make_pano(colour=(0, 0, 0)))
    (directory / "notes.txt").write_text("ignored")
    return directory
