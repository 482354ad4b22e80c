import pandas as pd
from pathlib import Path
import logging
from typing import Any, Dict, List

from .errors import OutputDirectoryError
from .utils import ensure_directory


class DataManager:
    """Accumulates one report row per processed image and keeps the CSV current."""

    def __init__(self, report_path: str):
        self.report_path = Path(report_path)
        self.rows: List[Dict[str, Any]] = []
        self.logger = logging.getLogger(__name__)

    def add_result(self, record: Dict[str, Any]) -> str:
        """
        Append a row and rewrite the whole report, so a partial run always
        leaves a complete-so-far file behind.
        """
        self.rows.append(dict(record))
        return self.write_report()

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows)

    def write_report(self) -> str:
        """
        Save all rows to CSV, replacing any previous file
        """
        ensure_directory(self.report_path.parent)
        try:
            self.to_frame().to_csv(self.report_path, index=False)
        except OSError as e:
            raise OutputDirectoryError(f"Could not write report {self.report_path}: {e}")
        self.logger.debug(f"Wrote {len(self.rows)} rows to {self.report_path}")
        return str(self.report_path)

    def load_report(self) -> pd.DataFrame:
        """
        Load the report from CSV
        """
        if self.report_path.exists():
            return pd.read_csv(self.report_path)
        return pd.DataFrame()

    def get_analysis_summary(self) -> dict:
        """
        Generate summary statistics over processed images
        """
        frame = self.to_frame()
        if frame.empty:
            return {}

        return {
            "total_images": len(frame),
            "mean_gap_fraction": frame["GF"].mean(),
            "min_gap_fraction": frame["GF"].min(),
            "max_gap_fraction": frame["GF"].max(),
        }
