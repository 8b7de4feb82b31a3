"""
Command-line entry point for the Fusion server.

Usage:
    python -m fusion.server [OPTIONS]

Options:
    --config PATH               YAML configuration file
    --host TEXT                 Host to bind to (default: 127.0.0.1)
    --port INTEGER              Port to bind to (default: 8181)
    --path TEXT                 WebSocket endpoint path (default: /fusion)
    --db TEXT                   Database name (default: fusion)
    --dev-mode                  Create collections and indexes on demand
    --snapshot-path PATH        Load and save in-memory data at this path
    --index-build-delay FLOAT   Simulated index build time in seconds
    --api-key TEXT              API key required from clients
    --log-level TEXT            Log level (DEBUG, INFO, WARNING, ERROR)
"""

import argparse
from dataclasses import replace

from .config import ServerConfig, load_config, set_config
from .app import create_app
from . import run_server


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Merge command-line flags over the file and environment settings."""
    if args.config:
        config = load_config(args.config)
    else:
        config = ServerConfig.from_env()

    overrides = {
        name: getattr(args, name)
        for name in (
            "host", "port", "path", "db", "snapshot_path",
            "index_build_delay", "api_key", "log_level",
        )
        if getattr(args, name) is not None
    }
    if args.dev_mode:
        overrides["dev_mode"] = True

    # replace() reruns __post_init__, applying dev mode
    return replace(config, **overrides)


def main():
    parser = argparse.ArgumentParser(
        description="Fusion Server - Realtime Data Gateway"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration file"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: 8181)"
    )
    parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="WebSocket endpoint path (default: /fusion)"
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Database name (default: fusion)"
    )
    parser.add_argument(
        "--dev-mode",
        action="store_true",
        help="Create collections and indexes on demand"
    )
    parser.add_argument(
        "--snapshot-path",
        type=str,
        default=None,
        help="Load and save in-memory data at this path"
    )
    parser.add_argument(
        "--index-build-delay",
        type=float,
        default=None,
        help="Simulated index build time in seconds"
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key required from clients (optional)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level"
    )

    args = parser.parse_args()

    config = build_config(args)
    set_config(config)

    print(f"""
Fusion Server
  Host:      {config.host}
  Port:      {config.port}
  WebSocket: ws://{config.host}:{config.port}{config.path}
  Database:  {config.db}
  Dev Mode:  {config.dev_mode}
  Log Level: {config.log_level}
  API Docs:  http://{config.host}:{config.port}/docs
    """)

    run_server(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
