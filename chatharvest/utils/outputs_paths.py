"""Centralized outputs path management for chatharvest.

This module provides a single source of truth for every file the engine
writes (encrypted sessions, CSV reports, JSONL results, debug artifacts and
logs), all derived from the directories configured in ``global_settings``.
"""

import logging
from datetime import date, datetime
from pathlib import Path

from ..platforms.base.config import HarvestConfig
from . import ensure_dirs_exist, sanitize_filename, timestamp_slug

logger = logging.getLogger(__name__)

SESSION_FILE_SUFFIX = "_session.enc"
REPORT_FILE_PREFIX = "harvest"
RESULTS_FILE_PREFIX = "results"
LOG_FILE_NAME = "harvest.log"


def get_session_file(sessions_dir: Path, platform_id: str) -> Path:
    """Path of a platform's encrypted session file."""
    return sessions_dir / f"{sanitize_filename(platform_id)}{SESSION_FILE_SUFFIX}"


def get_report_file(
    reports_dir: Path, platform_id: str, moment: datetime | None = None
) -> Path:
    """Path of a per-platform CSV checkpoint.

    Args:
    ----
        reports_dir: Directory holding the CSV reports
        platform_id: Platform the report belongs to
        moment: Timestamp embedded in the name (defaults to now)

    Returns:
    -------
        ``<reports_dir>/harvest_<YYYYmmdd_HHMMSS>_<platform>.csv``

    """
    slug = timestamp_slug(moment)
    return reports_dir / f"{REPORT_FILE_PREFIX}_{slug}_{sanitize_filename(platform_id)}.csv"


def get_results_file(results_dir: Path, day: date | None = None) -> Path:
    """Path of the day's JSONL result store."""
    day = day or date.today()
    return results_dir / f"{RESULTS_FILE_PREFIX}-{day.isoformat()}.jsonl"


def get_debug_name(platform_id: str, moment: datetime | None = None) -> str:
    """Base name of the debug artifacts captured for a failed query."""
    return f"{sanitize_filename(platform_id)}_{timestamp_slug(moment)}"


def get_log_file(logs_dir: Path) -> Path:
    return logs_dir / LOG_FILE_NAME


def ensure_outputs_structure(config: HarvestConfig) -> None:
    """Ensure the configured output directories exist."""
    try:
        for directory in (
            config.sessions_path,
            config.reports_path,
            config.results_path,
            config.debug_path,
            config.logs_path,
        ):
            ensure_dirs_exist(directory)
        logger.debug(f"📁 Outputs structure ensured under: {config.resolve_path('.')}")
    except Exception as e:
        logger.error(f"❌ Failed to ensure outputs structure: {e}")
        raise
