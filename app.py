#!/usr/bin/env python3
"""
DevPilot Agent - Entry Point
==============================
One-command startup for the DevPilot remote execution agent.

Usage:
    python app.py                                   # agent.config.json next to app.py
    python app.py --config /etc/devpilot/agent.config.json
    python app.py --public-url https://node-1.example.net

This script:
    1. Loads configuration from agent.config.json
    2. Loads environment variables from .env (announce secret)
    3. Creates the FastAPI application
    4. Starts the uvicorn server
"""

import os
import shutil
import sys
import argparse
import uvicorn
from dotenv import load_dotenv


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load config, and start the agent server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        prog="devpilot-agent",
        description="DevPilot Agent - remote execution agent for pre-registered projects",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to agent.config.json (default: next to app.py)",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to listen on (overrides listen.port)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides listen.host)",
    )
    parser.add_argument(
        "--public-url", type=str, default=None,
        help="URL advertised to the controller (default: http://<host>:<port>)",
    )
    parser.add_argument(
        "--no-announce", action="store_true",
        help="Do not send heartbeats to the controller",
    )
    args = parser.parse_args(argv)

    # -- Resolve config location -----------------------------------------------
    project_dir = os.path.dirname(os.path.abspath(__file__))
    config_path = os.path.abspath(args.config or os.path.join(project_dir, "agent.config.json"))

    # If the config is missing, create it from the shipped example so a new
    # installation starts with a valid (empty) project list.
    config_example = os.path.join(project_dir, "agent.config.json.example")
    if args.config is None and not os.path.exists(config_path) and os.path.exists(config_example):
        shutil.copy2(config_example, config_path)
        print("[INIT] Created agent.config.json from template")

    # -- Load environment variables from .env ----------------------------------
    env_path = os.path.join(os.path.dirname(config_path), ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    # -- Load configuration to get listen settings ----------------------------
    from agent.errors import ConfigError
    from server.config import ConfigManager
    from server.main import create_app

    try:
        config = ConfigManager(config_path).load()
    except ConfigError as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        return 1

    # Command-line args override config file
    host = args.host or config["listen"]["host"]
    port = args.port or config["listen"]["port"]
    public_url = args.public_url or f"http://{host}:{port}"

    # -- Build the application ------------------------------------------------
    try:
        app = create_app(config_path, public_url=public_url, enable_announce=not args.no_announce)
    except ConfigError as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        return 1

    # -- Print startup banner --------------------------------------------------
    print()
    print(f"  DevPilot Agent [{config['agentId']}]")
    print(f"  Listening : http://{host}:{port}")
    print(f"  Projects  : {len(app.state.registry)}")
    print()

    # -- Start the web server --------------------------------------------------
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
