import argparse
import json
import logging
from typing import Any, Dict, Optional

import yaml

from cli.cli_exit_codes import ExitCode
from core.exceptions import ConfigLoadError
from settings.config_loader import ConfigLoader, ServerSettings

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, level: Optional[str] = None) -> None:
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, (level or "info").upper(), logging.INFO)
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(level=log_level, format=log_format)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def describe_settings(settings: ServerSettings) -> Dict[str, Any]:
    return {
        "host": settings.host,
        "port": settings.port,
        "log_level": settings.log_level,
        "chaos": settings.chaos.describe(),
    }


def handle_check_config(args: argparse.Namespace) -> int:
    """Loads the effective settings and prints them, or the validation errors."""
    setup_logging(getattr(args, "verbose", False))

    try:
        settings = ConfigLoader.load(config_path=args.config)
    except ConfigLoadError as e:
        logger.error(f"Invalid configuration: {e.message}")
        print(f"❌ {e}")
        return ExitCode.INVALID_CONFIG

    data = describe_settings(settings)
    if args.format == "json":
        print(json.dumps(data, indent=2))
    else:
        print(yaml.safe_dump(data, sort_keys=False), end="")
        print("✓ Configuration is valid.")
    return ExitCode.SUCCESS
