"""
DevPilot Agent - Core Package
===============================
The trust-boundary core of the remote execution agent.

This package contains everything that decides what a remote controller
may do inside a project:
    - registry.py : Immutable set of configured projects
    - guards.py   : Path containment and command allowlist predicates
    - tools.py    : list_files / read_file / apply_patch / run_command
    - errors.py   : Structured error taxonomy with HTTP status codes
    - announce.py : Heartbeat loop reporting this agent to the controller

Usage:
    from agent import ProjectRegistry, ToolDispatcher

    registry = ProjectRegistry.from_config(config["projects"])
    dispatcher = ToolDispatcher(registry)
    dispatcher.read_file("web", "package.json")
"""

from agent.registry import Project, ProjectRegistry
from agent.tools import PatchOperation, ToolDispatcher, ToolLimits

__all__ = [
    "PatchOperation",
    "Project",
    "ProjectRegistry",
    "ToolDispatcher",
    "ToolLimits",
]
