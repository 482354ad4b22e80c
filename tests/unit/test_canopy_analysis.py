import pytest
import cv2
import numpy as np

from PanoCanopy.processing.canopy_analysis import CanopyAnalyzer, hemi_file_name
from PanoCanopy.processing.errors import ProjectionError
from PanoCanopy.processing.models import BinarizationConfig, ClassifiedImage, RingSegmentGrid


@pytest.fixture
def analyzer(circle_mask):
    """Fixture to provide an analyzer with default stages and a circle mask."""
    return CanopyAnalyzer(circle_mask)


def test_hemi_file_name():
    """Test the masked hemisphere naming."""
    assert hemi_file_name("/data/raw/PANO_0001.jpg") == "PANO_0001hemi_masked.jpg"
    assert hemi_file_name("site.png", suffix="_hemi.png") == "site_hemi.png"


def test_white_panorama_is_open_sky(analyzer, make_pano):
    """Test that a white 8x4 panorama gives a gap fraction of one."""
    output = analyzer.analyze_panorama(make_pano(8, 4, (255, 255, 255)), "whitehemi_masked.jpg")
    assert output.hemisphere.shape == (8, 8, 3)
    assert output.masked.shape == (8, 8, 3)
    assert output.classified.threshold == 128.0
    assert output.report.gap_fraction == 1.0
    assert output.report.canopy_cover == 0.0
    assert output.report.hemi_file == "whitehemi_masked.jpg"


def test_black_panorama_is_closed(analyzer, make_pano):
    """Test that a black panorama gives a gap fraction of zero."""
    output = analyzer.analyze_panorama(make_pano(8, 4, (0, 0, 0)), "blackhemi_masked.jpg")
    assert output.report.gap_fraction == 0.0
    assert output.report.canopy_cover == 1.0


def test_masked_outside_is_black(analyzer, make_pano, circle_mask):
    """Test that the composite blackens everything outside the mask."""
    output = analyzer.analyze_panorama(make_pano(), "pano")
    inside = circle_mask.rasterize(64)
    assert np.all(output.masked[~inside] == 0)
    assert np.all(output.masked[inside] == 255)
    assert np.array_equal(output.classified.valid_mask, inside)


def test_mixed_panorama(analyzer):
    """Test a panorama with bright sky above and dark foliage towards the horizon."""
    pano = np.zeros((32, 64, 3), dtype=np.uint8)
    pano[:, :] = (40, 90, 40)
    pano[:8] = (250, 200, 170)
    output = analyzer.analyze_panorama(pano, "mixed")
    report = output.report
    assert 0.0 < report.gap_fraction < 1.0
    assert report.canopy_cover == pytest.approx(1.0 - report.gap_fraction)
    assert output.classified.values[32, 32] == ClassifiedImage.SKY
    assert output.classified.values[32, 2] == ClassifiedImage.CANOPY
    assert report.le > 0


def test_heading_override(analyzer, split_pano):
    """Test that a per-image heading rotates the hemisphere."""
    plain = analyzer.analyze_panorama(split_pano, "pano")
    turned = analyzer.analyze_panorama(split_pano, "pano", heading=180)
    assert tuple(plain.hemisphere[32, 4]) == (0, 0, 255)
    assert tuple(turned.hemisphere[32, 4]) == (255, 0, 0)


def test_custom_stages(circle_mask, make_pano):
    """Test that the analyzer uses the configured grid and binarization."""
    analyzer = CanopyAnalyzer(circle_mask,
                              binarization=BinarizationConfig(method="manual", manual_threshold=200),
                              grid=RingSegmentGrid(nrings=3, nseg=4))
    output = analyzer.analyze_panorama(make_pano(), "pano")
    assert output.table.valid_counts.shape == (3, 4)
    assert output.report.gap_fraction == 0.0


def test_process_single_image_reports_decode_failure(analyzer, tmp_path):
    """Test that an undecodable file is returned as a failed result."""
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not an image")
    result = analyzer.process_single_image(str(path))
    assert not result.ok
    assert result.report is None
    assert "broken.jpg" in result.error


def test_from_settings(test_settings, default_mask_path):
    """Test building an analyzer from the configuration."""
    test_settings.set('mask.path', str(default_mask_path))
    test_settings.set('sampling.nseg', 12)
    analyzer = CanopyAnalyzer.from_settings(test_settings)
    assert analyzer.grid.nseg == 12
    assert analyzer.mask.source == str(default_mask_path)


@pytest.mark.parametrize("heading", [float('nan'), float('inf'), "north"])
def test_invalid_heading_fails_only_the_image(analyzer, make_pano, tmp_path, heading):
    """Test that a non-finite or non-numeric per-image heading becomes a failed result."""
    with pytest.raises(ProjectionError):
        analyzer.analyze_panorama(make_pano(), "pano", heading=heading)

    path = tmp_path / "pano.png"
    cv2.imwrite(str(path), make_pano())
    result = analyzer.process_single_image(str(path), heading=heading)
    assert not result.ok
    assert "heading" in result.error.lower()
