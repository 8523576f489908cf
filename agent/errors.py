"""
DevPilot Agent - Error Taxonomy
=================================
Every failure a tool invocation can surface to the controller.

Each error class carries the HTTP status code the server responds with,
so the route layer can translate any ``ToolError`` into a response
without a lookup table:

    InvalidRequest       400  malformed input
    ProjectNotFound      404  unknown project id
    PathTraversal        403  path leaves the project root
    DirectoryUnreadable  500  list_files target missing / not a directory
    FileUnreadable       500  read_file target missing / unreadable / too large
    CommandNotAllowed    403  command rejected by the project's allowlist
    ProcessSpawnFailure  500  the shell could not be started
    CommandTimeout       504  the command ran past its time limit

Per-operation patch failures are NOT raised; apply_patch aggregates them
as strings in its result.
"""


class ToolError(Exception):
    """Base class for all structured tool failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ToolError):
    status_code = 400


class ProjectNotFound(ToolError):
    status_code = 404


class PathTraversal(ToolError):
    status_code = 403


class DirectoryUnreadable(ToolError):
    status_code = 500


class FileUnreadable(ToolError):
    status_code = 500


class CommandNotAllowed(ToolError):
    status_code = 403


class ProcessSpawnFailure(ToolError):
    status_code = 500


class CommandTimeout(ToolError):
    status_code = 504


class ConfigError(ValueError):
    """Raised at startup when the configuration document is invalid."""
