"""
DevPilot Agent - Audit Logger
===============================
Records every request and tool invocation the agent handles.

Log files are stored in the configured log directory with one file per
day (e.g. data/logs/2026-10-19.log).  Every line is also printed to the
terminal so operators running the agent in the foreground see it live.

Line format:
    [HH:MM:SS] [AUDIT] POST /tools/read_file (Node: node-1) -> 200
    [HH:MM:SS] [TOOL] read_file({'projectId': 'web', 'path': 'a.txt'})
    [HH:MM:SS] [RESULT] read_file ok
"""

import os
import threading
from datetime import datetime
from typing import Any


class AuditLogger:
    """
    Dual-output logger: writes to per-day log files AND prints to stdout.

    Safe to call from concurrent request threads and the announce thread;
    file appends are serialized by a lock.

    Attributes:
        log_dir:  Directory for log files, or None to log to stdout only.
        agent_id: Identity of this agent, included in request lines.
        echo:     Whether lines are also printed to the terminal.
    """

    def __init__(self, log_dir: str | None, agent_id: str = "", echo: bool = True):
        self.log_dir = log_dir
        self.agent_id = agent_id
        self.echo = echo
        self._lock = threading.Lock()

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    def _get_log_path(self) -> str:
        """Get today's log file path."""
        today = datetime.now().strftime("%Y-%m-%d")
        return os.path.join(self.log_dir, f"{today}.log")

    def _timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _write(self, text: str) -> None:
        """Append a line to today's log file and echo it."""
        line = f"[{self._timestamp()}] {text}"
        if self.log_dir:
            try:
                with self._lock:
                    with open(self._get_log_path(), "a", encoding="utf-8") as f:
                        f.write(line + "\n")
            except OSError:
                pass
        if self.echo:
            print(line, flush=True)

    def info(self, text: str) -> None:
        """Log an informational message."""
        self._write(text)

    def request(self, method: str, path: str, status: int | None = None) -> None:
        """Log an inbound HTTP request."""
        line = f"[AUDIT] {method} {path} (Node: {self.agent_id})"
        if status is not None:
            line += f" -> {status}"
        self._write(line)

    def allow(self, path: str) -> None:
        """Log that a non-health request was let through."""
        self._write(f"[ALLOW] {path} access granted")

    def tool_call(self, name: str, args: dict[str, Any]) -> None:
        """Log a tool invocation with compacted arguments."""
        args_str = str(args)
        if len(args_str) > 200:
            args_str = args_str[:200] + "..."
        self._write(f"[TOOL] {name}({args_str})")

    def tool_result(self, name: str, ok: bool, detail: str = "") -> None:
        """Log the outcome of a tool invocation."""
        status = "ok" if ok else "failed"
        line = f"[RESULT] {name} {status}"
        if detail:
            preview = detail[:300] + ("..." if len(detail) > 300 else "")
            line += f": {preview}"
        self._write(line)
