"""
Data model for the panorama to hemisphere canopy pipeline.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError

INTERPOLATIONS = ("nearest", "linear", "cubic")


class ThresholdMethod(Enum):
    """How the sky/non-sky threshold is chosen."""
    OTSU = "otsu"
    MANUAL = "manual"
    ZONAL = "zonal"


class ChannelMode(Enum):
    """Channel or channel mixture used for classification."""
    RED = "R"
    GREEN = "G"
    BLUE = "B"
    RGB = "RGB"
    LUMA = "Luma"
    TWO_BG = "2BG"


class LensType(Enum):
    """Lens projection relating radius on the disc to view zenith angle."""
    EQUIDISTANT = "equidistant"
    EQUISOLID = "equisolid"
    STEREOGRAPHIC = "stereographic"
    ORTHOGRAPHIC = "orthographic"


def parse_enum(enum_cls, value, name: str):
    """Coerce a config value into enum_cls, matching values case-insensitively."""
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if str(value).lower() in (member.value.lower(), member.name.lower()):
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise ConfigurationError(f"Invalid {name} '{value}'. Expected one of: {choices}")


def as_number(value, name: str) -> float:
    """Coerce a config value to a finite float."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ConfigurationError(f"{name} must be finite, got {number}")
    return number


def as_positive_int(value, name: str) -> int:
    """Coerce a config value to an integer >= 1."""
    number = as_number(value, name)
    if number != int(number) or number < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(number)


@dataclass
class ProjectionParameters:
    """Orientation and resampling used by the geometric projector."""
    heading: float = 0.0
    interpolation: str = "linear"

    def __post_init__(self):
        self.heading = as_number(self.heading, "Heading") % 360.0
        if self.interpolation not in INTERPOLATIONS:
            raise ConfigurationError(
                f"Invalid interpolation '{self.interpolation}'. Expected one of: {', '.join(INTERPOLATIONS)}")


@dataclass
class BinarizationConfig:
    """Channel selection, gamma and threshold settings for the binarizer.

    Thresholds, manual or computed, live on the 0-255 scale of the
    gamma-corrected channel value.
    """
    channel: ChannelMode = ChannelMode.TWO_BG
    method: ThresholdMethod = ThresholdMethod.OTSU
    gamma: float = 2.2
    manual_threshold: Optional[float] = None
    zonal_rings: int = 4

    def __post_init__(self):
        self.channel = parse_enum(ChannelMode, self.channel, "channel")
        self.method = parse_enum(ThresholdMethod, self.method, "binarization method")
        self.gamma = as_number(self.gamma, "Gamma")
        if not self.gamma > 0:
            raise ConfigurationError(f"Gamma must be a positive number, got {self.gamma!r}")
        if self.method is ThresholdMethod.MANUAL:
            if self.manual_threshold is None:
                raise ConfigurationError("A manual threshold is required when method is 'manual'")
            self.manual_threshold = as_number(self.manual_threshold, "Manual threshold")
            if not 0 <= self.manual_threshold <= 255:
                raise ConfigurationError(
                    f"Manual threshold must lie in [0, 255], got {self.manual_threshold}")
        elif self.manual_threshold is not None:
            raise ConfigurationError(
                f"A manual threshold was given but method is '{self.method.value}'")
        self.zonal_rings = as_positive_int(self.zonal_rings, "zonal_rings")


@dataclass
class CircularRegion:
    """Circle (pixel units) delimiting the valid part of the hemisphere."""
    xc: float
    yc: float
    rc: float

    def __post_init__(self):
        if not self.rc > 0:
            raise ConfigurationError(f"Region radius must be positive, got {self.rc}")

    @classmethod
    def centered(cls, side: int) -> "CircularRegion":
        """Inscribed circle of a side x side image."""
        return cls(side / 2.0, side / 2.0, side / 2.0)


@dataclass
class RingSegmentGrid:
    """Concentric zenith rings and azimuth segments used for sampling."""
    start_vza: float = 0.0
    end_vza: float = 90.0
    nrings: int = 5
    nseg: int = 8
    lens: LensType = LensType.EQUIDISTANT
    max_vza: float = 90.0

    def __post_init__(self):
        self.lens = parse_enum(LensType, self.lens, "lens")
        self.nrings = as_positive_int(self.nrings, "nrings")
        self.nseg = as_positive_int(self.nseg, "nseg")
        self.start_vza = as_number(self.start_vza, "start_vza")
        self.end_vza = as_number(self.end_vza, "end_vza")
        self.max_vza = as_number(self.max_vza, "max_vza")
        if not 0 <= self.start_vza < self.end_vza <= 90:
            raise ConfigurationError(
                f"Zenith range must satisfy 0 <= startVZA < endVZA <= 90, "
                f"got {self.start_vza}-{self.end_vza}")
        if not self.max_vza > 0:
            raise ConfigurationError(f"max_vza must be positive, got {self.max_vza}")

    @property
    def ring_width(self) -> float:
        return (self.end_vza - self.start_vza) / self.nrings

    @property
    def ring_edges(self) -> np.ndarray:
        return np.linspace(self.start_vza, self.end_vza, self.nrings + 1)

    @property
    def ring_centers(self) -> np.ndarray:
        edges = self.ring_edges
        return (edges[:-1] + edges[1:]) / 2.0

    @property
    def segment_width(self) -> float:
        return 360.0 / self.nseg


@dataclass
class ClassifiedImage:
    """Binarized hemisphere. values holds SKY, CANOPY or INVALID per pixel."""
    SKY = 1
    CANOPY = 0
    INVALID = 255

    values: np.ndarray
    threshold: Union[float, Tuple[float, ...]]
    region: CircularRegion

    @property
    def valid_mask(self) -> np.ndarray:
        return self.values != self.INVALID

    @property
    def sky_mask(self) -> np.ndarray:
        return self.values == self.SKY


@dataclass
class GapFractionTable:
    """Sky and valid pixel counts per ring x segment cell."""
    sky_counts: np.ndarray
    valid_counts: np.ndarray
    grid: RingSegmentGrid

    @property
    def total_sky(self) -> int:
        return int(self.sky_counts.sum())

    @property
    def total_valid(self) -> int:
        return int(self.valid_counts.sum())

    @property
    def overall(self) -> float:
        """Pooled gap fraction over every included cell."""
        return self.total_sky / self.total_valid

    def cell_gap_fractions(self) -> np.ndarray:
        """Gap fraction per cell, NaN where a cell holds no valid pixel."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(self.valid_counts > 0,
                            self.sky_counts / np.maximum(self.valid_counts, 1), np.nan)

    def ring_gap_fractions(self) -> np.ndarray:
        """Pooled gap fraction per ring, NaN for empty rings."""
        sky = self.sky_counts.sum(axis=1)
        valid = self.valid_counts.sum(axis=1)
        return np.where(valid > 0, sky / np.maximum(valid, 1), np.nan)

    def to_frame(self) -> pd.DataFrame:
        """Long-format table, one row per cell."""
        centers = self.grid.ring_centers
        rows = []
        gaps = self.cell_gap_fractions()
        for ring in range(self.grid.nrings):
            for seg in range(self.grid.nseg):
                rows.append({
                    'ring': ring + 1,
                    'seg': seg + 1,
                    'vza': centers[ring],
                    'sky_pixels': int(self.sky_counts[ring, seg]),
                    'valid_pixels': int(self.valid_counts[ring, seg]),
                    'GF': gaps[ring, seg],
                })
        return pd.DataFrame(rows)


@dataclass(frozen=True)
class CanopyReport:
    """Canopy statistics for one processed image."""
    hemi_file: str
    gap_fraction: float
    canopy_cover: float
    le: float
    l: float
    lx: float
    difn: float
    grid: RingSegmentGrid

    def as_record(self) -> Dict[str, Any]:
        return {
            'HemiFile': self.hemi_file,
            'GF': self.gap_fraction,
            'CC': self.canopy_cover,
            'Le': self.le,
            'L': self.l,
            'LX': self.lx,
            'DIFN': self.difn,
            'startVZA': self.grid.start_vza,
            'endVZA': self.grid.end_vza,
            'nrings': self.grid.nrings,
            'nseg': self.grid.nseg,
            'lens': self.grid.lens.value,
        }


@dataclass
class AnalysisOutput:
    """Every intermediate product of one pipeline run."""
    hemisphere: np.ndarray
    masked: np.ndarray
    classified: ClassifiedImage
    table: GapFractionTable
    report: CanopyReport


@dataclass
class ProcessingResult:
    """Outcome of processing one input file; error is set on failure."""
    image_path: str
    timestamp: str
    report: Optional[CanopyReport] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    masked_path: Optional[str] = None
    binary_path: Optional[str] = None
    error: Optional[str] = None
    output: Optional[AnalysisOutput] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None

    def as_record(self) -> Dict[str, Any]:
        record = dict(self.metadata)
        if self.report is not None:
            record.update(self.report.as_record())
        return record
