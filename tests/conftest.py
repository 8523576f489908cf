"""Shared fixtures: a throwaway project tree, registry, dispatcher and app."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from agent.registry import Project, ProjectRegistry
from agent.tools import ToolDispatcher, ToolLimits
from server.main import create_app


@pytest.fixture
def project_root(tmp_path):
    """Create a small project tree: README.md, src/main.py, docs/."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "README.md").write_text("# demo\n")
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("print('hello')\n")
    (root / "docs").mkdir()
    return root


@pytest.fixture
def registry(project_root):
    return ProjectRegistry([
        Project(
            id="demo",
            name="Demo",
            root=str(project_root),
            allowed_commands=("echo", "ls", "exit", "sleep", "yes", "env"),
        ),
        Project(id="locked", name="Locked", root=str(project_root), allowed_commands=()),
    ])


@pytest.fixture
def dispatcher(registry):
    return ToolDispatcher(registry, ToolLimits(command_timeout=10))


@pytest.fixture
def write_config(tmp_path):
    """Write a config document next to tmp_path and return its path."""

    def _write(data: dict, name: str = "agent.config.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return str(path)

    return _write


@pytest.fixture
def agent_config(project_root):
    return {
        "agentId": "test-node",
        "listen": {"host": "127.0.0.1", "port": 8787},
        "projects": [
            {
                "id": "demo",
                "name": "Demo",
                "root": str(project_root),
                "allowedCommands": ["echo", "exit"],
            }
        ],
        "server": {"log_dir": "logs"},
    }


@pytest.fixture
def client(agent_config, write_config):
    app = create_app(write_config(agent_config), enable_announce=False, echo_logs=False)
    with TestClient(app) as c:
        yield c
