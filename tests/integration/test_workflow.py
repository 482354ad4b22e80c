import json
import logging

import pytest
import cv2
import numpy as np
import pandas as pd

from PanoCanopy.app import main
from PanoCanopy.config.settings import Settings
from PanoCanopy.processing.batch_processor import BatchProcessorCore
from PanoCanopy.processing.canopy_analysis import CanopyAnalyzer


@pytest.fixture
def batch_processor(tmp_path, circle_mask, test_settings):
    """Fixture to provide a batch processor writing below tmp_path/output."""
    analyzer = CanopyAnalyzer.from_settings(test_settings, mask=circle_mask)
    return BatchProcessorCore(analyzer, tmp_path / "output", test_settings)


def test_complete_workflow(batch_processor, image_dir, tmp_path):
    """Test the workflow from a directory of panoramas to the report."""
    output_dir = tmp_path / "output"
    summary = batch_processor.process_directory(image_dir)

    assert summary.processed == 3
    assert len(summary.results) == 2
    assert len(summary.failures) == 1
    assert summary.failures[0].image_path.endswith("b_broken.jpg")

    report = pd.read_csv(output_dir / "canopy_output.csv")
    assert len(report) == 2
    assert list(report['HemiFile']) == ['a_whitehemi_masked.jpg', 'c_blackhemi_masked.jpg']
    assert list(report['GF']) == [1.0, 0.0]
    assert list(report['CC']) == [0.0, 1.0]
    assert {'SourceFile', 'Make', 'Model', 'ImageWidth', 'ImageHeight', 'Megapixels',
            'Le', 'L', 'LX', 'DIFN', 'nrings', 'nseg'} <= set(report.columns)
    assert list(report['ImageWidth']) == [64, 64]


def test_artifacts_are_written(batch_processor, image_dir, tmp_path):
    """Test that masked hemispheres and binary images are saved per success."""
    output_dir = tmp_path / "output"
    summary = batch_processor.process_directory(image_dir)

    masked_path = output_dir / "masked_hemispheres" / "a_whitehemi_masked.jpg"
    binary_path = output_dir / "results" / "a_whitehemi_masked_bin.png"
    assert summary.results[0].masked_path == str(masked_path)
    assert masked_path.exists()
    assert binary_path.exists()
    assert not (output_dir / "masked_hemispheres" / "b_brokenhemi_masked.jpg").exists()

    masked = cv2.imread(str(masked_path))
    assert masked.shape == (64, 64, 3)
    binary = cv2.imread(str(binary_path), cv2.IMREAD_GRAYSCALE)
    assert binary[32, 32] == 255
    assert binary[0, 0] == 0
    assert set(np.unique(binary)) == {0, 255}


def test_stale_report_is_replaced(batch_processor, image_dir, tmp_path):
    """Test that the report only holds rows from the current run."""
    stale = tmp_path / "output" / "canopy_output.csv"
    pd.DataFrame({'GF': [0.5] * 5}).to_csv(stale, index=False)
    batch_processor.process_directory(image_dir)
    assert len(pd.read_csv(stale)) == 2


def test_diagnostics_figure(tmp_path, circle_mask, image_dir):
    """Test that the ring/segment figure is saved when enabled."""
    settings = Settings()
    settings.set('output.save_diagnostics', True)
    settings.set('output.export_binary', False)
    analyzer = CanopyAnalyzer.from_settings(settings, mask=circle_mask)
    processor = BatchProcessorCore(analyzer, tmp_path / "output", settings)
    processor.process_directory(image_dir)

    assert (tmp_path / "output" / "diagnostics" / "a_whitehemi_masked_gapfrac.png").exists()
    assert not (tmp_path / "output" / "results").exists()


def test_parallel_batch_keeps_input_order(tmp_path, circle_mask, make_pano):
    """Test that worker processes report results in enumeration order."""
    input_dir = tmp_path / "raw_images"
    input_dir.mkdir()
    shades = [255, 0, 255, 0]
    for index, shade in enumerate(shades):
        cv2.imwrite(str(input_dir / f"pano_{index}.png"), make_pano(colour=(shade, shade, shade)))

    settings = Settings()
    settings.set('processing.max_workers', 2)
    analyzer = CanopyAnalyzer.from_settings(settings, mask=circle_mask)
    processor = BatchProcessorCore(analyzer, tmp_path / "output", settings)
    summary = processor.process_directory(input_dir)

    assert [r.image_path for r in summary.results] == \
        [str(input_dir / f"pano_{i}.png") for i in range(4)]
    report = pd.read_csv(tmp_path / "output" / "canopy_output.csv")
    assert list(report['GF']) == [1.0, 0.0, 1.0, 0.0]


def test_empty_directory(batch_processor, tmp_path):
    """Test that an empty input directory processes nothing."""
    empty = tmp_path / "empty"
    empty.mkdir()
    summary = batch_processor.process_directory(empty)
    assert summary.processed == 0
    assert not (tmp_path / "output" / "canopy_output.csv").exists()


def test_cli_run(image_dir, tmp_path, default_mask_path):
    """Test the command line entry point end to end."""
    output_dir = tmp_path / "cli_output"
    status = main([str(image_dir), "-o", str(output_dir), "-m", str(default_mask_path),
                   "--log-dir", str(tmp_path / "logs")])
    assert status == 0
    report = pd.read_csv(output_dir / "canopy_output.csv")
    assert list(report['GF']) == [1.0, 0.0]


def test_cli_rejects_invalid_config(image_dir, tmp_path, default_mask_path):
    """Test that a bad configuration stops the run before any image is read."""
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"binarization": {"gamma": 0}}))
    output_dir = tmp_path / "cli_output"
    with pytest.raises(SystemExit) as excinfo:
        main([str(image_dir), "-o", str(output_dir), "-c", str(config_path),
              "-m", str(default_mask_path), "--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 1
    assert not (output_dir / "canopy_output.csv").exists()


def test_cli_missing_mask(image_dir, tmp_path):
    """Test that a missing mask file stops the run."""
    with pytest.raises(SystemExit) as excinfo:
        main([str(image_dir), "-o", str(tmp_path / "out"), "-m", str(tmp_path / "none.svg"),
              "--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 1


def test_cli_missing_input_directory(tmp_path, default_mask_path):
    """Test that a missing input directory stops the run."""
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "missing"), "-o", str(tmp_path / "out"), "-m", str(default_mask_path),
              "--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 1


def test_bad_metadata_heading_skips_only_that_image(tmp_path, circle_mask, make_pano, monkeypatch):
    """Test that a non-finite PoseHeadingDegrees fails its image and the batch carries on."""
    from PanoCanopy.processing import batch_processor as batch_module

    input_dir = tmp_path / "raw_images"
    input_dir.mkdir()
    for name in ("a.png", "b.png", "c.png"):
        cv2.imwrite(str(input_dir / name), make_pano())

    read_metadata = batch_module.read_image_metadata

    def fake_metadata(image_path, fields=None):
        record = read_metadata(image_path, fields)
        record['PoseHeadingDegrees'] = float('nan') if image_path.endswith("b.png") else 90.0
        return record

    monkeypatch.setattr(batch_module, "read_image_metadata", fake_metadata)

    settings = Settings()
    settings.set('projection.heading_from_metadata', True)
    analyzer = CanopyAnalyzer.from_settings(settings, mask=circle_mask)
    processor = BatchProcessorCore(analyzer, tmp_path / "output", settings)
    summary = processor.process_directory(input_dir)

    assert [r.image_path for r in summary.results] == [str(input_dir / "a.png"), str(input_dir / "c.png")]
    assert len(summary.failures) == 1
    assert "heading" in summary.failures[0].error.lower()
    report = pd.read_csv(tmp_path / "output" / "canopy_output.csv")
    assert list(report['HemiFile']) == ['ahemi_masked.jpg', 'chemi_masked.jpg']
    assert list(report['PoseHeadingDegrees']) == [90.0, 90.0]


def test_smallest_end_to_end_panoramas(tmp_path, circle_mask, make_pano):
    """Test 8x4 white and black panoramas through the whole batch."""
    input_dir = tmp_path / "raw_images"
    input_dir.mkdir()
    cv2.imwrite(str(input_dir / "a_white.png"), make_pano(8, 4, (255, 255, 255)))
    cv2.imwrite(str(input_dir / "b_black.png"), make_pano(8, 4, (0, 0, 0)))

    settings = Settings()
    analyzer = CanopyAnalyzer.from_settings(settings, mask=circle_mask)
    processor = BatchProcessorCore(analyzer, tmp_path / "output", settings)
    summary = processor.process_directory(input_dir)

    assert len(summary.results) == 2
    report = pd.read_csv(tmp_path / "output" / "canopy_output.csv")
    assert list(report['GF']) == [1.0, 0.0]
    assert list(report['ImageWidth']) == [8, 8]
    masked = cv2.imread(str(tmp_path / "output" / "masked_hemispheres" / "a_whitehemi_masked.jpg"))
    assert masked.shape == (8, 8, 3)


def test_progress_logging(batch_processor, image_dir, caplog):
    """Test that sequential runs log the time of each image."""
    caplog.set_level(logging.INFO, logger="PanoCanopy.processing.batch_processor")
    batch_processor.process_directory(image_dir)
    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("Completed 1 of 3 images in ") and m.endswith(" seconds.") for m in messages)
    assert any(m.startswith("Estimated ") for m in messages)


def test_parallel_progress_logs_run_average(tmp_path, circle_mask, make_pano, caplog):
    """Test that worker pools log the run average instead of per-image times."""
    input_dir = tmp_path / "raw_images"
    input_dir.mkdir()
    for index in range(3):
        cv2.imwrite(str(input_dir / f"pano_{index}.png"), make_pano())

    settings = Settings()
    settings.set('processing.max_workers', 2)
    analyzer = CanopyAnalyzer.from_settings(settings, mask=circle_mask)
    processor = BatchProcessorCore(analyzer, tmp_path / "output", settings)

    caplog.set_level(logging.INFO, logger="PanoCanopy.processing.batch_processor")
    processor.process_directory(input_dir)
    completed = [record.getMessage() for record in caplog.records
                 if record.getMessage().startswith("Completed")]
    assert len(completed) == 3
    assert all("seconds per image" in m for m in completed)
    assert not any(" images in " in m for m in completed)


def test_cli_rejects_wrongly_typed_config(image_dir, tmp_path, default_mask_path):
    """Test that a null ring count is a configuration error, not a crash."""
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"sampling": {"nrings": None}}))
    with pytest.raises(SystemExit) as excinfo:
        main([str(image_dir), "-o", str(tmp_path / "out"), "-c", str(config_path),
              "-m", str(default_mask_path), "--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 1
