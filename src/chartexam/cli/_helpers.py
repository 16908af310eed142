"""Shared utilities for CLI entrypoints."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from chartexam.config.loader import Config, ConfigError, default_config, load_config

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/example.yaml"
LOCAL_CONFIG_PATH = "config/local.yaml"


def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help=(
            "Path to YAML config file (default: "
            f"{LOCAL_CONFIG_PATH} if present, else {DEFAULT_CONFIG_PATH}, "
            "else built-in exam time limits)"
        ),
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging for troubleshooting",
    )


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")
    if verbose:
        return
    for name in ("urllib3", "requests"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_cli_config(config_path: Optional[str]) -> Config:
    """Resolve the CLI config; an explicit ``--config`` must exist and validate."""
    if config_path:
        resolved = Path(config_path)
    else:
        candidates = (Path(LOCAL_CONFIG_PATH), Path(DEFAULT_CONFIG_PATH))
        resolved = next((path for path in candidates if path.exists()), None)
        if resolved is None:
            LOGGER.info("No config file found; using built-in exam time limits")
            return default_config()
    try:
        return load_config(resolved)
    except ConfigError as exc:
        raise SystemExit(f"Config validation failed: {exc}") from exc


def describe_time_limits(config: Config) -> str:
    return ", ".join(f"{exam_type}={limit}s" for exam_type, limit in sorted(config.time_limits_s.items()))
