"""
DevPilot Agent - Server Package
=================================
The HTTP surface of the DevPilot remote execution agent.

This package provides:
- FastAPI application exposing the project tools to a remote controller
- JSON error rendering and CORS / audit middleware
- Configuration loading (agent.config.json + .env)
- Lifecycle management of the announce (heartbeat) thread

Architecture:
    main.py    -> FastAPI app creation, middleware, error handlers, lifespan
    routes.py  -> All REST API endpoint handlers
    config.py  -> Read agent.config.json and .env
    audit.py   -> Per-day audit log files
    manager.py -> Announce thread lifecycle management (start/stop/status)
"""
