"""
DevPilot Agent - Tool Dispatcher
==================================
The four tools a remote controller may invoke on a project:

    1. list_files   - List the direct children of a directory
    2. read_file    - Read one file
    3. apply_patch  - Create / update / delete a batch of files
    4. run_command  - Run an allowlisted shell command in the project root

Safety:
    Every tool first resolves the project id through the ProjectRegistry,
    then passes each caller-supplied path through ``resolve_path`` and each
    command through ``is_command_allowed`` (see guards.py).  Nothing is
    read, written, or executed before those checks succeed.

Patch semantics:
    A patch batch is NOT transactional.  Operations are applied one by one;
    a failing operation is recorded in the result's ``errors`` list and the
    batch continues.  Earlier writes are never rolled back.  Callers detect
    partial failure by comparing ``applied`` to the number of operations
    they submitted.

Command execution:
    Commands run through the shell with the project root as working
    directory, in their own process group, with a sanitised environment.
    Output is captured into memory up to ``max_output_bytes`` per stream;
    past that ceiling the process group is killed and the result is marked
    ``truncated``.  Commands running longer than ``command_timeout`` are
    killed and reported as CommandTimeout.
"""

import base64
import fnmatch
import os
import re
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, Iterable

from agent.errors import (
    CommandNotAllowed,
    CommandTimeout,
    ConfigError,
    DirectoryUnreadable,
    FileUnreadable,
    PathTraversal,
    ProcessSpawnFailure,
)
from agent.guards import COMMAND_MATCH_MODES, is_command_allowed, resolve_path
from agent.registry import ProjectRegistry


# =============================================================================
# Limits
# =============================================================================

@dataclass(frozen=True)
class ToolLimits:
    """
    Resource ceilings applied by the dispatcher.

    Attributes:
        command_timeout:  Seconds a command may run before it is killed.
        max_output_bytes: Captured bytes kept per stream (stdout / stderr).
        max_read_bytes:   Largest file read_file will return.
        command_match:    Allowlist matching mode, "prefix" or "token".
    """

    command_timeout: float = 120.0
    max_output_bytes: int = 1024 * 1024
    max_read_bytes: int = 5 * 1024 * 1024
    command_match: str = "prefix"

    @classmethod
    def from_config(cls, tools_config: dict | None) -> "ToolLimits":
        """Build limits from the "tools" configuration section."""
        cfg = tools_config or {}
        mode = cfg.get("command_match", cls.command_match)
        if mode not in COMMAND_MATCH_MODES:
            mode = cls.command_match
        try:
            return cls(
                command_timeout=float(cfg.get("command_timeout", cls.command_timeout)),
                max_output_bytes=int(cfg.get("max_output_bytes", cls.max_output_bytes)),
                max_read_bytes=int(cfg.get("max_read_bytes", cls.max_read_bytes)),
                command_match=mode,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid 'tools' limits: {e}") from e


@dataclass(frozen=True)
class PatchOperation:
    """One entry of a patch batch."""

    op: str
    path: str
    content: str | None = None


# =============================================================================
# Environment Sanitising
# =============================================================================

# Any env var whose name matches one of these patterns is removed before a
# command runs, so commands cannot read the agent's announce secret or
# other credentials present in the agent's own environment.
_SENSITIVE_ENV_PATTERNS = [
    r'.*API_KEY.*',
    r'.*SECRET.*',
    r'.*PASSWORD.*',
    r'.*TOKEN.*',
    r'^DEVPILOT_.*',
]

_SENSITIVE_ENV_RE = re.compile(
    '|'.join(_SENSITIVE_ENV_PATTERNS),
    re.IGNORECASE,
)


def _make_clean_env() -> dict[str, str]:
    """
    Create a sanitised copy of the current environment for subprocess.

    Everything else (PATH, HOME, LANG, etc.) is preserved so normal
    commands work correctly.
    """
    return {
        k: v
        for k, v in os.environ.items()
        if not _SENSITIVE_ENV_RE.match(k)
    }


# =============================================================================
# Tool Implementations
# =============================================================================

def _list_dir(target: str, glob: str | None = None) -> list[dict[str, Any]]:
    """
    List the direct children of ``target``.

    Returns:
        Entries sorted by name: {"name", "isDir", "size"}; "size" is
        present for files only.

    Raises:
        DirectoryUnreadable: If the directory is missing or unreadable.
    """
    try:
        with os.scandir(target) as it:
            entries = list(it)
    except OSError:
        raise DirectoryUnreadable("failed to read directory")

    result = []
    for entry in sorted(entries, key=lambda e: e.name):
        if glob and not fnmatch.fnmatch(entry.name, glob):
            continue
        try:
            is_dir = entry.is_dir()
        except OSError:
            is_dir = False
        item: dict[str, Any] = {"name": entry.name, "isDir": is_dir}
        if not is_dir:
            try:
                item["size"] = entry.stat().st_size
            except OSError:
                pass  # dangling symlink
        result.append(item)
    return result


def _read_file(target: str, max_bytes: int) -> dict[str, str]:
    """
    Read a file as text when it is valid UTF-8, else as base64.

    Returns:
        {"content": ..., "encoding": "utf-8" | "base64"}

    Raises:
        FileUnreadable: Missing, a directory, unreadable, or too large.
    """
    try:
        size = os.stat(target).st_size
        if size > max_bytes:
            raise FileUnreadable(f"file too large: {size} bytes (limit {max_bytes})")
        with open(target, "rb") as f:
            data = f.read()
    except OSError:
        raise FileUnreadable("failed to read file")

    try:
        return {"content": data.decode("utf-8"), "encoding": "utf-8"}
    except UnicodeDecodeError:
        return {"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"}


def _write_file(target: str, content: str) -> str | None:
    """
    Write ``content`` to ``target``, creating parent directories.

    Returns:
        None on success, otherwise an error string for the patch result.
    """
    # Encode before opening so a bad payload never truncates the target.
    try:
        data = content.encode("utf-8")
    except UnicodeEncodeError as e:
        return f"invalid content: {e}"

    try:
        os.makedirs(os.path.dirname(target), exist_ok=True)
    except OSError as e:
        return f"failed to create dir: {e}"

    try:
        with open(target, "wb") as f:
            f.write(data)
    except OSError as e:
        return f"failed to write file: {e}"
    return None


def _delete_file(target: str) -> str | None:
    """Remove a file; returns an error string on failure."""
    try:
        os.remove(target)
    except OSError as e:
        return f"failed to delete: {e}"
    return None


class _StreamCollector(threading.Thread):
    """
    Drain one pipe into memory, keeping at most ``limit`` bytes.

    Reading continues past the limit (discarding data) so the child never
    blocks on a full pipe; ``on_overflow`` is called the first time the
    limit is exceeded.
    """

    def __init__(self, stream, limit: int, on_overflow):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.on_overflow = on_overflow
        self.buffer = bytearray()
        self.overflowed = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(65536)
                if not chunk:
                    break
                room = self.limit - len(self.buffer)
                if room > 0:
                    self.buffer += chunk[:room]
                if len(chunk) > room and not self.overflowed:
                    self.overflowed = True
                    self.on_overflow()
        except (OSError, ValueError):
            pass  # pipe closed underneath us after a kill
        finally:
            self.stream.close()

    def text(self) -> str:
        return self.buffer.decode("utf-8", errors="replace")


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the command and everything it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    except AttributeError:
        proc.kill()  # no process groups on this platform


def _shell_execute(
    command: str,
    cwd: str,
    timeout: float,
    max_output: int,
) -> dict[str, Any]:
    """
    Run ``command`` through the shell in ``cwd`` and capture its output.

    Returns:
        {"stdout", "stderr", "exitCode", "truncated"}.  A killed process
        reports the negative signal number as its exit code.

    Raises:
        ProcessSpawnFailure: The shell could not be started.
        CommandTimeout:      The command outlived ``timeout``.
    """
    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=_make_clean_env(),
            start_new_session=True,
        )
    except OSError as e:
        raise ProcessSpawnFailure(f"failed to start command: {e}")

    kill_lock = threading.Lock()

    def _on_overflow() -> None:
        with kill_lock:
            if proc.poll() is None:
                _kill_group(proc)

    out = _StreamCollector(proc.stdout, max_output, _on_overflow)
    err = _StreamCollector(proc.stderr, max_output, _on_overflow)
    out.start()
    err.start()

    try:
        exit_code = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.wait()
        out.join(timeout=5)
        err.join(timeout=5)
        raise CommandTimeout(f"command timed out after {timeout:g}s")

    # The shell is gone; background children left in its session would
    # keep the pipes open and outlive the request.
    _kill_group(proc)
    out.join(timeout=5)
    err.join(timeout=5)

    return {
        "stdout": out.text(),
        "stderr": err.text(),
        "exitCode": exit_code,
        "truncated": out.overflowed or err.overflowed,
    }


# =============================================================================
# Dispatcher
# =============================================================================

class ToolDispatcher:
    """
    Entry point for all tool invocations.

    Holds the read-only project registry and the resource limits.  The
    dispatcher keeps no per-request state, so one instance is shared by
    all concurrent requests.

    Attributes:
        registry: Projects this agent serves.
        limits:   Timeouts and size ceilings.
    """

    def __init__(self, registry: ProjectRegistry, limits: ToolLimits | None = None):
        self.registry = registry
        self.limits = limits or ToolLimits()

    def list_files(self, project_id: str, path: str = "", glob: str | None = None) -> list[dict[str, Any]]:
        """
        List direct children of ``path`` (relative to the project root).

        Raises:
            ProjectNotFound, PathTraversal, DirectoryUnreadable
        """
        project = self.registry.find(project_id)
        target = resolve_path(project.root, path or "", allow_root=True)
        return _list_dir(target, glob)

    def read_file(self, project_id: str, path: str) -> dict[str, str]:
        """
        Read one file of the project.

        Raises:
            ProjectNotFound, PathTraversal, FileUnreadable
        """
        project = self.registry.find(project_id)
        target = resolve_path(project.root, path)
        return _read_file(target, self.limits.max_read_bytes)

    def apply_patch(self, project_id: str, operations: Iterable[PatchOperation]) -> dict[str, Any]:
        """
        Apply a batch of file operations, each independently.

        Returns:
            {"applied": <count>, "errors": [<message>, ...]} where errors
            follow the order of the failing operations.

        Raises:
            ProjectNotFound: Before any operation is attempted.
        """
        project = self.registry.find(project_id)
        applied = 0
        errors: list[str] = []

        for operation in operations:
            error = self._apply_one(project.root, operation)
            if error:
                errors.append(error)
            else:
                applied += 1

        return {"applied": applied, "errors": errors}

    def _apply_one(self, root: str, operation: PatchOperation) -> str | None:
        """Apply a single patch operation; returns an error string or None."""
        try:
            target = resolve_path(root, operation.path)
        except PathTraversal as e:
            return e.message

        if operation.op in ("create", "update"):
            if operation.content is None:
                return f"missing content for {operation.op}: {operation.path}"
            return _write_file(target, operation.content)

        if operation.op == "delete":
            return _delete_file(target)

        return f"unknown operation: {operation.op}"

    def run_command(self, project_id: str, command: str) -> dict[str, Any]:
        """
        Run an allowlisted command in the project root.

        Raises:
            ProjectNotFound, CommandNotAllowed, ProcessSpawnFailure,
            CommandTimeout
        """
        project = self.registry.find(project_id)
        if not is_command_allowed(project.allowed_commands, command, self.limits.command_match):
            raise CommandNotAllowed("command not allowed")

        return _shell_execute(
            command=command,
            cwd=project.root,
            timeout=self.limits.command_timeout,
            max_output=self.limits.max_output_bytes,
        )
