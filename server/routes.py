"""
DevPilot Agent - REST API Routes
==================================
All HTTP endpoints the remote controller talks to.

Route groups:
    GET  /projects           - Projects served by this agent
    GET  /health             - Liveness probe
    POST /tools/list_files   - List a directory inside a project
    POST /tools/read_file    - Read a file inside a project
    POST /tools/apply_patch  - Apply a batch of file operations
    POST /tools/run_command  - Run an allowlisted command in a project

Every failure is answered with {"error": "<message>"}; see the exception
handlers in main.py.  The tool routes are plain (non-async) functions, so
FastAPI runs each request in its own worker thread and a long-running
command never blocks the event loop.
"""

from typing import Any, Callable

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from agent.errors import ToolError
from agent.registry import ProjectRegistry
from agent.tools import PatchOperation, ToolDispatcher
from server.audit import AuditLogger


# =============================================================================
# Request Models (Pydantic)
# =============================================================================

class ListFilesRequest(BaseModel):
    """List the direct children of a directory."""
    project_id: str = Field(..., alias="projectId", description="Project identifier")
    path: str = Field("", description="Directory relative to the project root")
    glob: str | None = Field(None, description="Optional fnmatch pattern on entry names")

class ReadFileRequest(BaseModel):
    """Read a single file."""
    project_id: str = Field(..., alias="projectId", description="Project identifier")
    path: str = Field(..., description="File relative to the project root")

class PatchOperationModel(BaseModel):
    """One file operation. Unknown ops are reported per operation, not rejected."""
    op: str = Field(..., description="create, update or delete")
    path: str = Field(..., description="File relative to the project root")
    content: str | None = Field(None, description="New file content (create / update)")

class ApplyPatchRequest(BaseModel):
    """Apply a batch of file operations."""
    project_id: str = Field(..., alias="projectId", description="Project identifier")
    operations: list[PatchOperationModel] = Field(..., description="Operations, applied in order")

class RunCommandRequest(BaseModel):
    """Run a shell command in the project root."""
    project_id: str = Field(..., alias="projectId", description="Project identifier")
    command: str = Field(..., description="Command line, interpreted by the shell")


# =============================================================================
# Router Factory
# =============================================================================

def create_router(
    registry: ProjectRegistry,
    dispatcher: ToolDispatcher,
    audit: AuditLogger | None = None,
    public_projects: bool = False,
) -> APIRouter:
    """
    Create and configure the API router with all endpoints.

    Args:
        registry:        Projects served by this agent.
        dispatcher:      Executes the tool operations.
        audit:           Audit logger for tool calls (optional).
        public_projects: If True, /projects omits roots and allowlists.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter()

    def _invoke(name: str, args: dict[str, Any], fn: Callable[[], Any]) -> Any:
        """Run one tool call, log it, and map ToolError to an HTTP error."""
        if audit:
            audit.tool_call(name, args)
        try:
            result = fn()
        except ToolError as e:
            if audit:
                audit.tool_result(name, ok=False, detail=e.message)
            raise HTTPException(status_code=e.status_code, detail=e.message)
        if audit:
            audit.tool_result(name, ok=True)
        return result

    # =========================================================================
    # INFO ROUTES
    # =========================================================================

    @router.get("/projects")
    async def list_projects():
        """List the projects this agent serves."""
        return registry.describe(public=public_projects)

    @router.get("/health")
    async def health():
        """Liveness probe."""
        return {"status": "ok"}

    # =========================================================================
    # TOOL ROUTES
    # =========================================================================

    @router.post("/tools/list_files")
    def list_files(req: ListFilesRequest):
        """
        List the direct children of a directory (non-recursive).
        Each entry: {name, isDir, size?}; size is given for files only.
        """
        return _invoke(
            "list_files",
            {"projectId": req.project_id, "path": req.path, "glob": req.glob},
            lambda: dispatcher.list_files(req.project_id, req.path, req.glob),
        )

    @router.post("/tools/read_file")
    def read_file(req: ReadFileRequest):
        """
        Read a file. UTF-8 content is returned as text; anything else is
        returned base64-encoded with encoding="base64".
        """
        return _invoke(
            "read_file",
            {"projectId": req.project_id, "path": req.path},
            lambda: dispatcher.read_file(req.project_id, req.path),
        )

    @router.post("/tools/apply_patch")
    def apply_patch(req: ApplyPatchRequest):
        """
        Apply file operations one by one. Failing operations are listed in
        "errors" and do not stop the batch; nothing is rolled back.
        """
        operations = [
            PatchOperation(op=o.op, path=o.path, content=o.content)
            for o in req.operations
        ]
        result = _invoke(
            "apply_patch",
            {"projectId": req.project_id, "operations": len(operations)},
            lambda: dispatcher.apply_patch(req.project_id, operations),
        )

        body: dict[str, Any] = {"applied": result["applied"]}
        if result["errors"]:
            body["errors"] = result["errors"]
            if audit:
                audit.info(f"[PATCH] {len(result['errors'])} of {len(operations)} operation(s) failed")
        return body

    @router.post("/tools/run_command")
    def run_command(req: RunCommandRequest):
        """
        Run an allowlisted command with the project root as working
        directory. A nonzero exit code is a normal result.
        """
        return _invoke(
            "run_command",
            {"projectId": req.project_id, "command": req.command},
            lambda: dispatcher.run_command(req.project_id, req.command),
        )

    return router
