"""
Run Report Persistence — JSON file holding the last run's summary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from ..models.run import RunResult

logger = logging.getLogger(__name__)

DEFAULT_REPORT_FILE = "state/last_run.json"


def load_report(path: Path) -> Optional[RunResult]:
    """
    Load the last run report.

    Returns None if no run has been recorded yet.

    Raises:
        ValidationError: If the report file is invalid
    """
    if not path.exists():
        return None
    logger.debug(f"Loading run report from {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return RunResult(**data)


def save_report(result: RunResult, path: Path) -> None:
    """
    Save a run report.

    Uses atomic write (write to temp, then rename) to prevent corruption.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(".tmp")
    with temp_path.open("w", encoding="utf-8") as f:
        json.dump(result.model_dump(), f, indent=4)
        f.write("\n")

    temp_path.replace(path)
    logger.info(f"Run report saved: {result.run_id} → {path.name}")
