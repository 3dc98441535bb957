"""Tabular CSV export of query results.

Each platform gets its own checkpoint file so that a crash late in a batch
never loses the platforms that already finished. Files are written with a
UTF-8 byte order mark so spreadsheet tools pick up the CJK text correctly.
"""

import csv
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

from ..platforms.base.models import QueryResult
from ..platforms.base.references import format_reference_list
from ..utils import ensure_dirs_exist
from ..utils.outputs_paths import get_report_file

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "query",
    "tag",
    "platform",
    "model",
    "response",
    "search_results",
    "references",
    "timestamp",
]


def result_to_row(result: QueryResult) -> dict[str, str]:
    return {
        "query": result.query,
        "tag": result.tag,
        "platform": result.platform_id,
        "model": result.model,
        "response": result.response_text if result.succeeded else f"ERROR: {result.error}",
        "search_results": format_reference_list(result.search_results),
        "references": format_reference_list(result.references),
        "timestamp": result.timestamp.isoformat(),
    }


class ResultExporter:
    def __init__(self, reports_dir: Path, now: Callable[[], datetime] = datetime.now):
        self.reports_dir = reports_dir
        self._now = now

    def timestamp(self) -> datetime:
        """Moment embedded in report names; one per batch run."""
        return self._now()

    def export_platform(
        self,
        platform_id: str,
        results: Sequence[QueryResult],
        moment: datetime | None = None,
    ) -> Path | None:
        """Write one platform's results to a timestamped CSV file.

        Args:
        ----
            platform_id: Platform the results belong to
            results: Results to write, in execution order
            moment: Run timestamp shared by every file of a batch (defaults to now)

        Returns
        -------
            Path of the written file, or None when there was nothing to write
            or writing failed

        """
        if not results:
            logger.debug(f"No results to export for {platform_id}")
            return None

        path = get_report_file(self.reports_dir, platform_id, moment or self._now())
        try:
            ensure_dirs_exist(path)
            with open(path, "w", encoding="utf-8-sig", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
                writer.writeheader()
                for result in results:
                    writer.writerow(result_to_row(result))
        except OSError as e:
            logger.error(f"Failed to export {platform_id} results to {path}: {e}")
            return None

        logger.info(f"📄 Exported {len(results)} {platform_id} results to {path}")
        return path
