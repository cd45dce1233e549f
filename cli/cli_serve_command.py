# cli/cli_serve_command.py

import argparse
import logging
from typing import Any, Dict

import uvicorn

from cli.cli_chaos_flags import chaos_overrides_from_args
from cli.cli_exit_codes import ExitCode
from cli.cli_validator import setup_logging
from core.exceptions import ConfigLoadError
from core.server_factory import create_server
from settings.config_loader import ConfigLoader

logger = logging.getLogger(__name__)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port

    chaos = chaos_overrides_from_args(args)
    if chaos:
        overrides["chaos"] = chaos
    return overrides


def handle_serve_command(args: argparse.Namespace) -> int:
    """
    Handles the 'serve' CLI command by starting the echo server.
    """
    try:
        settings = ConfigLoader.load(config_path=args.config, overrides=build_overrides(args))
    except ConfigLoadError as e:
        setup_logging(args.verbose)
        logger.error(f"Invalid configuration: {e}")
        return ExitCode.INVALID_CONFIG

    setup_logging(args.verbose, settings.log_level)
    logger.info(f"🔧 Chaos settings: {settings.chaos.describe()}")

    app = create_server(settings)

    logger.info(f"🚀 Rucho listening on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if args.verbose else settings.log_level,
    )
    logger.info("🛑 Server stopped")

    return ExitCode.SUCCESS
