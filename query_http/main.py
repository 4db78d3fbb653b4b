#!/usr/bin/env python3
"""
Query HTTP adapter - server entry point.

Loads config.yaml, configures structured logging, imports the configured
query engine and serves it over HTTP with uvicorn.
"""

import argparse
import importlib
import sys
from typing import Any, Callable, List, Optional

import uvicorn

from query_http import __version__
from query_http.asgi import create_app
from query_http.config import Config, ConfigManager
from query_http.exceptions import ConfigurationError
from query_http.handler import QueryEngine
from query_http.logging_config import configure_from_dict, get_logger


def load_engine_factory(import_path: str) -> Callable[[], QueryEngine]:
    """
    Resolve a ``module:attribute`` import path to an engine factory.

    Raises:
        ConfigurationError: If the module or attribute cannot be found or the
            attribute is not callable
    """
    module_name, _, attribute = import_path.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import engine module '{module_name}': {e}") from e

    factory = getattr(module, attribute, None)
    if factory is None:
        raise ConfigurationError(f"Engine factory '{attribute}' not found in '{module_name}'")
    if not callable(factory):
        raise ConfigurationError(f"Engine factory '{import_path}' is not callable")
    return factory


def build_app(config: Config) -> Any:
    """Create the FastAPI application described by ``config``."""
    factory = load_engine_factory(config.engine.factory)
    return create_app(
        config.engine.options,
        engine=factory(),
        path=config.endpoint.path,
        debug=config.server.debug,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = argparse.ArgumentParser(
        prog='query-http',
        description='HTTP adapter serving a query engine on a single endpoint',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=str, default='config.yaml', help='Path to configuration file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    try:
        config = ConfigManager().load_config(args.config)
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging_settings = config.logging.model_dump()
    if args.verbose:
        logging_settings["level"] = "DEBUG"
    configure_from_dict(logging_settings)
    logger = get_logger("query_http.server")

    try:
        app = build_app(config)
    except ConfigurationError as e:
        logger.critical(f"Startup failed: {e.message}", extra={"error_code": e.error_code})
        return 2

    logger.info(
        "Starting query HTTP server",
        extra={"host": config.server.host, "port": config.server.port, "path": config.endpoint.path}
    )
    try:
        uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == '__main__':
    sys.exit(main())
