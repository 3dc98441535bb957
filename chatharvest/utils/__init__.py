"""Utility functions for chatharvest.

This module provides a collection of helpers used throughout the project for
filesystem management, filename sanitization and debug artifact capture.
"""

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

# Constants for file handling
MAX_FILENAME_LENGTH = 200  # Maximum safe filename length
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

logger = logging.getLogger(__name__)


def ensure_dirs_exist(path: Path) -> None:
    """Ensure that the parent directories for the given path exist.
    If path is a directory, ensure the path itself exists.
    Logs an error but does not re-raise exceptions during directory creation.
    """
    try:
        if path.suffix:  # If path includes a filename, make parent dirs
            path.parent.mkdir(parents=True, exist_ok=True)
        else:  # If path is a directory path, make the path itself
            path.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        logger.error(f"Failed to create directories for {path}: {e}")


def sanitize_filename(filename: str) -> str:
    """Sanitizes a string to be safe for use as a filename,
    removing or replacing invalid characters and limiting length.

    Args:
    ----
        filename: The input string.

    Returns:
    -------
        A sanitized string suitable for filesystem use.

    """
    if not filename or not filename.strip():
        return "file"

    name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", filename)
    name = re.sub(r"\s+", "_", name)
    name = re.sub(r"_{3,}", "_", name)
    name = name.strip(". ").strip("_")

    if not name:
        return "file"

    if len(name) > MAX_FILENAME_LENGTH:
        name_part, ext_part = os.path.splitext(name)
        name_part = name_part[: MAX_FILENAME_LENGTH - len(ext_part)].strip("._ ") or "part"
        name = name_part + ext_part

    return name


def timestamp_slug(moment: datetime | None = None) -> str:
    """Format a moment as ``YYYYmmdd_HHMMSS`` for use in file names."""
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


async def capture_debug_artifacts(
    page: Any, debug_dir: Path, name: str
) -> dict[str, Path]:
    """Save a screenshot and the page HTML for post-mortem inspection.

    Capture is best effort: each failure is logged and skipped, and nothing
    is raised to the caller.

    Args:
    ----
        page: The Playwright Page object.
        debug_dir: The base directory for saving debug output.
        name: A descriptive name for the artifact files (will be sanitized).

    Returns:
    -------
        Mapping of artifact kind ("screenshot", "html") to the saved path.

    """
    saved: dict[str, Path] = {}
    safe_name = sanitize_filename(name)

    screenshot_path = debug_dir / f"{safe_name}.png"
    try:
        ensure_dirs_exist(screenshot_path)
        await page.screenshot(path=str(screenshot_path), full_page=True)
        saved["screenshot"] = screenshot_path
        logger.debug(f"Screenshot saved: {screenshot_path}")
    except Exception as e:
        logger.warning(f"Failed to take screenshot '{name}': {e}")

    html_path = debug_dir / f"{safe_name}.html"
    try:
        ensure_dirs_exist(html_path)
        html_path.write_text(await page.content(), encoding="utf-8")
        saved["html"] = html_path
        logger.debug(f"Page HTML saved: {html_path}")
    except Exception as e:
        logger.warning(f"Failed to save page HTML '{name}': {e}")

    return saved
