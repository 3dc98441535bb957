"""Append-only JSONL store of query results, one file per day."""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date
from pathlib import Path
from typing import Any

from ..platforms.base.models import QueryResult
from ..utils import ensure_dirs_exist
from ..utils.outputs_paths import get_results_file

logger = logging.getLogger(__name__)


class ResultStore:
    def __init__(self, results_dir: Path, today: Callable[[], date] = date.today):
        self.results_dir = results_dir
        self._today = today

    @property
    def current_file(self) -> Path:
        return get_results_file(self.results_dir, self._today())

    def append(self, result: QueryResult) -> bool:
        """Append one result as a JSON line. Failures are logged, not raised."""
        path = self.current_file
        try:
            ensure_dirs_exist(path)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(result.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Failed to append result to {path}: {e}")
            return False
        return True

    def append_all(self, results: Iterable[QueryResult]) -> int:
        return sum(1 for result in results if self.append(result))

    def read(self, day: date | None = None) -> list[dict[str, Any]]:
        """Read back every stored record of a day, skipping malformed lines."""
        path = get_results_file(self.results_dir, day or self._today())
        if not path.is_file():
            return []
        records = []
        with open(path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning(f"Skipping malformed line {line_no} in {path}: {e}")
        return records
