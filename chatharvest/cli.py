"""Command line entry point: run a batch of queries across chat platforms."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .core import (
    BatchRunner,
    Monitor,
    QueryOrchestrator,
    ResultExporter,
    ResultStore,
    SessionStore,
)
from .platforms.base import (
    DEFAULT_CONFIG_PATH,
    BatchProgress,
    BrowserManager,
    PlatformConfigManager,
    QueryItem,
)
from .platforms.base.utils import truncate
from .utils import ensure_dirs_exist
from .utils.outputs_paths import ensure_outputs_structure, get_log_file

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path, debug_mode: bool = False) -> Path:
    """Set up logging to both console and file.

    Args:
    ----
        log_dir: Directory that receives ``harvest.log``
        debug_mode: Whether to enable debug logging

    Returns:
    -------
        Path to the log file

    """
    log_level = logging.DEBUG if debug_mode else logging.INFO

    ensure_dirs_exist(log_dir)
    # Use fixed log filename that gets overwritten on each run
    log_file = get_log_file(log_dir)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    console_handler.setLevel(log_level)

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        )
    )
    file_handler.setLevel(log_level)

    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    if not debug_mode:
        for lib in ["asyncio", "playwright", "urllib3"]:
            logging.getLogger(lib).setLevel(logging.WARNING)

    logger.info(
        f"Logging configured - Level: {logging.getLevelName(log_level)}, "
        f"File: {log_file}"
    )
    return log_file


def load_queries(path: Path) -> list[QueryItem]:
    """Load batch queries from a JSON, YAML or plain text file.

    JSON and YAML files hold a list of strings or query mappings, either at
    the top level or under a ``queries`` key. Text files hold one query per
    line; blank lines and ``#`` comments are skipped.

    Raises
    ------
        ValueError: If the file format or content is not supported

    """
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".txt":
        return [
            QueryItem(text=line.strip())
            for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]

    data: Any
    if suffix == ".json":
        data = json.loads(text)
    elif suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        raise ValueError(f"Unsupported queries file type: {path.suffix}")

    if isinstance(data, dict):
        data = data.get("queries")
    if not isinstance(data, list):
        raise ValueError("Queries file must contain a list of queries")

    items = [QueryItem.from_raw(entry) for entry in data]
    return [item for item in items if item.text.strip()]


def resolve_platforms(
    requested: str | None, config_manager: PlatformConfigManager
) -> list[str]:
    """Validate a comma-separated platform list against the configuration.

    Raises
    ------
        ValueError: If a requested platform is unknown or disabled

    """
    if not requested:
        return config_manager.get_enabled_platforms()

    platforms = [p.strip() for p in requested.split(",") if p.strip()]
    for platform_id in platforms:
        config_manager.get_profile(platform_id)
        if not config_manager.is_platform_enabled(platform_id):
            raise ValueError(
                f"Platform {platform_id} is not enabled in configuration. "
                f"Set 'platforms.{platform_id}.enabled: true' in config file."
            )
    return platforms


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Submit queries to chat front-ends and harvest answers with references."
    )
    parser.add_argument(
        "queries_file",
        type=Path,
        help="Path to a .json, .yaml/.yml or .txt file with the queries.",
    )
    parser.add_argument(
        "--platforms",
        type=str,
        help="Comma-separated platform ids (default: all enabled platforms).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Platform config file (default: {DEFAULT_CONFIG_PATH.name}).",
    )
    parser.add_argument(
        "--retries", type=int, help="Attempts per (platform, query) pair."
    )
    parser.add_argument(
        "--headed", action="store_true", help="Show the browser window."
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode.")
    parser.add_argument(
        "--reset-sessions",
        action="store_true",
        help="Delete stored sessions of the selected platforms before running.",
    )
    return parser


def print_progress(progress: BatchProgress) -> None:
    result = progress.last_result
    status = "✅" if result.succeeded else f"❌ {result.error_kind.value if result.error_kind else ''}"
    print(
        f"[{progress.completed}/{progress.total}] {result.platform_id} "
        f"{truncate(result.query, 30)} -> {status} (attempts: {result.attempts})"
    )


async def async_main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.retries is not None and args.retries < 1:
        parser.error("--retries must be at least 1")

    load_dotenv()

    try:
        config_manager = PlatformConfigManager.from_file(args.config)
    except (FileNotFoundError, ValueError) as e:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logger.critical(f"Config loading failed: {e}")
        return 1

    config = config_manager.config
    if args.headed:
        config.global_settings.headless = False

    log_file = setup_logging(config.logs_path, args.debug)

    try:
        queries = load_queries(args.queries_file)
        platforms = resolve_platforms(args.platforms, config_manager)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.critical(f"Invalid input: {e}")
        return 1

    if not queries or not platforms:
        logger.critical("Nothing to run: no queries or no enabled platforms")
        return 1

    ensure_outputs_structure(config)
    session_store = SessionStore(config.sessions_path)
    if args.reset_sessions:
        for platform_id in platforms:
            session_store.delete(platform_id)

    monitor = Monitor()
    browser = BrowserManager(config.global_settings)
    try:
        await browser.start()
        runner = BatchRunner(
            QueryOrchestrator(config_manager, browser, session_store),
            config.batch,
            exporter=ResultExporter(config.reports_path),
            result_store=ResultStore(config.results_path),
            monitor=monitor,
        )
        await runner.run(
            queries, platforms, retry_count=args.retries, on_progress=print_progress
        )
    finally:
        await browser.close()

    monitor.log_report()
    print(json.dumps(monitor.get_report(), indent=2))
    logger.info(f"Complete log saved to: {log_file}")
    return 0


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(async_main(argv)))


if __name__ == "__main__":
    main()
