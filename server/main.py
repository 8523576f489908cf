"""
DevPilot Agent - FastAPI Application
======================================
Creates and configures the FastAPI web application that the remote
controller talks to.

Responsibilities:
    - Load configuration and build the project registry
    - Create the FastAPI app instance with CORS and the audit middleware
    - Register the API routes
    - Render every error as {"error": "<message>"}
    - Start / stop the announce thread with the application lifespan

Nothing here is process-global: every collaborator is created inside
create_app() and handed to the router factory, so several apps (e.g. in
tests) can coexist in one process.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent.registry import ProjectRegistry
from agent.tools import ToolDispatcher, ToolLimits
from server.audit import AuditLogger
from server.config import ConfigManager
from server.manager import AnnounceManager
from server.routes import create_router


def create_app(
    config_path: str,
    public_url: str | None = None,
    enable_announce: bool = True,
    echo_logs: bool = True,
) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        config_path:     Path to agent.config.json.
        public_url:      URL advertised to the controller.  Defaults to
                         http://<listen.host>:<listen.port>.
        enable_announce: Start the announce loop with the app.
        echo_logs:       Print audit lines to the terminal as well.

    Returns:
        Configured FastAPI application ready to run with uvicorn.

    Raises:
        ConfigError: If the configuration is invalid.
    """
    # -- Load configuration ----------------------------------------------------
    config_manager = ConfigManager(config_path)
    config = config_manager.load()

    agent_id = config["agentId"]
    listen = config["listen"]
    server_cfg = config["server"]
    public_projects = bool(server_cfg.get("public_projects", False))

    if not public_url:
        public_url = f"http://{listen['host']}:{listen['port']}"

    # -- Initialize collaborators ----------------------------------------------
    registry = ProjectRegistry.from_config(config["projects"], base_dir=config_manager.config_dir)
    dispatcher = ToolDispatcher(registry, ToolLimits.from_config(config["tools"]))

    log_dir = server_cfg.get("log_dir")
    audit = AuditLogger(
        config_manager.resolve_path(log_dir) if log_dir else None,
        agent_id=agent_id,
        echo=echo_logs,
    )
    announce_manager = AnnounceManager(
        agent_id=agent_id,
        public_url=public_url,
        registry=registry,
        announce_config=config["announce"],
        secret=config_manager.get_announce_secret(),
        logger=audit,
        public=public_projects,
    )

    # -- Lifespan: announce thread ---------------------------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        audit.info(f"[START] DevPilot Agent [{agent_id}] serving {len(registry)} project(s)")
        audit.info(f"[START] Agent Public URL: {public_url}")
        if enable_announce:
            announce_manager.start()
        try:
            yield
        finally:
            announce_manager.stop()
            audit.info("[STOP] Agent stopped")

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="DevPilot Agent",
        description="Remote execution agent confined to pre-registered project roots",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # -- Error rendering -------------------------------------------------------
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"invalid request: {location}: {first.get('msg', 'invalid value')}"
        else:
            message = "invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    # -- Audit middleware ------------------------------------------------------
    @app.middleware("http")
    async def audit_requests(request: Request, call_next):
        path = request.url.path
        if path != "/health" and request.method != "OPTIONS":
            audit.allow(path)
        response = await call_next(request)
        audit.request(request.method, path, response.status_code)
        return response

    # -- CORS middleware (added last so it wraps everything) -------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # -- Store collaborators on app state --------------------------------------
    app.state.config = config
    app.state.config_manager = config_manager
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    app.state.audit = audit
    app.state.announce_manager = announce_manager

    # -- Register API routes ---------------------------------------------------
    app.include_router(create_router(
        registry=registry,
        dispatcher=dispatcher,
        audit=audit,
        public_projects=public_projects,
    ))

    return app
