"""
Configuration settings for the panorama canopy pipeline.
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from PanoCanopy.processing.errors import ConfigurationError
from PanoCanopy.processing.metadata import DEFAULT_FIELDS, OPTIONAL_FIELDS
from PanoCanopy.processing.models import (BinarizationConfig, ProjectionParameters,
                                          RingSegmentGrid)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    'projection': {
        'heading': 0.0,
        'heading_from_metadata': False,
        'interpolation': 'linear',
    },
    'mask': {
        'path': 'HemiPhotoMask.svg',
    },
    'binarization': {
        'channel': '2BG',
        'method': 'otsu',
        'gamma': 2.2,
        'manual_threshold': None,
        'zonal_rings': 4,
    },
    'sampling': {
        'start_vza': 0.0,
        'end_vza': 90.0,
        'nrings': 5,
        'nseg': 8,
        'lens': 'equidistant',
        'max_vza': 90.0,
    },
    'metrics': {
        'saturation_pai': 8.0,
    },
    'metadata': {
        'fields': list(DEFAULT_FIELDS),
    },
    'output': {
        'masked_dir': 'masked_hemispheres',
        'masked_suffix': 'hemi_masked.jpg',
        'results_dir': 'results',
        'export_binary': True,
        'report_file': 'canopy_output.csv',
        'save_diagnostics': False,
        'diagnostics_dir': 'diagnostics',
    },
    'processing': {
        'max_workers': 1,
    },
}


def _merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Settings:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.default_config = copy.deepcopy(DEFAULT_CONFIG)
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file merged over the defaults."""
        if self.config_path is None:
            return copy.deepcopy(self.default_config)
        if not os.path.exists(self.config_path):
            raise ConfigurationError(f"Config file not found: {self.config_path}")
        try:
            with open(self.config_path, 'r') as f:
                user_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Error loading config {self.config_path}: {e}")
        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Config {self.config_path} must hold a JSON object")
        logger.info(f"Loaded configuration from {self.config_path}")
        return _merge(self.default_config, user_config)

    def save_config(self, path: Optional[str] = None) -> None:
        """Save configuration to file."""
        path = path or self.config_path
        if path is None:
            raise ConfigurationError("No path given to save the configuration to")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.config, f, indent=4)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key."""
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dotted key."""
        keys = key.split('.')
        config = self.config
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value

    def reset_to_default(self) -> None:
        """Reset configuration to default values."""
        self.config = copy.deepcopy(self.default_config)

    def projection_parameters(self, heading: Optional[float] = None) -> ProjectionParameters:
        """Projection settings; heading overrides the configured one when given."""
        return ProjectionParameters(
            heading=self.get('projection.heading') if heading is None else heading,
            interpolation=self.get('projection.interpolation'),
        )

    def binarization_config(self) -> BinarizationConfig:
        return BinarizationConfig(
            channel=self.get('binarization.channel'),
            method=self.get('binarization.method'),
            gamma=self.get('binarization.gamma'),
            manual_threshold=self.get('binarization.manual_threshold'),
            zonal_rings=self.get('binarization.zonal_rings'),
        )

    def ring_segment_grid(self) -> RingSegmentGrid:
        return RingSegmentGrid(
            start_vza=self.get('sampling.start_vza'),
            end_vza=self.get('sampling.end_vza'),
            nrings=self.get('sampling.nrings'),
            nseg=self.get('sampling.nseg'),
            lens=self.get('sampling.lens'),
            max_vza=self.get('sampling.max_vza'),
        )

    def get_max_workers(self) -> int:
        workers = self.get('processing.max_workers')
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise ConfigurationError(f"processing.max_workers must be a positive integer, got {workers!r}")
        return workers

    def get_saturation_pai(self) -> float:
        value = self.get('metrics.saturation_pai')
        if not isinstance(value, (int, float)) or not value > 0:
            raise ConfigurationError(f"metrics.saturation_pai must be positive, got {value!r}")
        return float(value)

    def validate(self) -> None:
        """Build every typed section once so bad values fail before any image is read."""
        self.projection_parameters()
        self.binarization_config()
        self.ring_segment_grid()
        self.get_max_workers()
        self.get_saturation_pai()
        if not self.get('mask.path'):
            raise ConfigurationError("mask.path must name the hemisphere mask file")
        if not self.get('output.report_file'):
            raise ConfigurationError("output.report_file must not be empty")
        self.metadata_fields()

    def metadata_fields(self) -> Tuple[str, ...]:
        """Report metadata columns; each must be a default or optional field."""
        fields = self.get('metadata.fields')
        if not isinstance(fields, (list, tuple)):
            raise ConfigurationError(f"metadata.fields must be a list, got {fields!r}")
        known = DEFAULT_FIELDS + OPTIONAL_FIELDS
        unknown = [name for name in fields if name not in known]
        if unknown:
            raise ConfigurationError(
                f"Unknown metadata field(s) {', '.join(map(str, unknown))}. "
                f"Expected any of: {', '.join(known)}")
        return tuple(fields)
