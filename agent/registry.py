"""
DevPilot Agent - Project Registry
===================================
The fixed set of projects this agent serves.

The registry is built once at startup from the "projects" section of the
configuration document and never changes afterwards.  Request handlers
share one instance; since nothing mutates it, lookups need no locking.

Usage:
    registry = ProjectRegistry.from_config(config["projects"], base_dir)
    project = registry.find("web")       # raises ProjectNotFound
    registry.describe(public=True)        # [{"id": ..., "name": ...}, ...]
"""

import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator

from agent.errors import ConfigError, ProjectNotFound


@dataclass(frozen=True)
class Project:
    """
    One project the agent may operate on.

    Attributes:
        id:               Unique identifier used by the controller.
        name:             Display name.
        root:             Absolute, normalized root directory.  Every tool
                          operation is confined to this subtree.
        allowed_commands: Ordered command allowlist.
    """

    id: str
    name: str
    root: str
    allowed_commands: tuple[str, ...] = ()

    def to_dict(self, public: bool = False) -> dict[str, Any]:
        """Render the project in the wire format used by /projects and announces."""
        data: dict[str, Any] = {"id": self.id, "name": self.name}
        if not public:
            data["root"] = self.root
            data["allowedCommands"] = list(self.allowed_commands)
        return data


class ProjectRegistry:
    """
    Read-only collection of projects keyed by id, in configuration order.
    """

    def __init__(self, projects: list[Project] | tuple[Project, ...] = ()):
        by_id: dict[str, Project] = {}
        for project in projects:
            if project.id in by_id:
                raise ConfigError(f"Duplicate project id: '{project.id}'")
            by_id[project.id] = project
        self._projects = MappingProxyType(by_id)

    @classmethod
    def from_config(cls, entries: Any, base_dir: str | None = None) -> "ProjectRegistry":
        """
        Build a registry from the raw "projects" configuration list.

        Args:
            entries:  List of dicts with keys id, name, root, allowedCommands.
            base_dir: Directory that relative roots are resolved against
                      (normally the directory containing the config file).
                      Defaults to the process working directory.

        Returns:
            A populated ProjectRegistry.

        Raises:
            ConfigError: If an entry is malformed or an id is duplicated.
        """
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ConfigError("'projects' must be a list")

        projects = []
        for index, entry in enumerate(entries):
            projects.append(_project_from_entry(index, entry, base_dir))
        return cls(projects)

    def find(self, project_id: str) -> Project:
        """
        Look up a project by id.

        Raises:
            ProjectNotFound: If no project has this id.
        """
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFound("project not found")
        return project

    def describe(self, public: bool = False) -> list[dict[str, Any]]:
        """Wire representation of every project, in configuration order."""
        return [p.to_dict(public=public) for p in self._projects.values()]

    def __iter__(self) -> Iterator[Project]:
        return iter(self._projects.values())

    def __len__(self) -> int:
        return len(self._projects)

    def __contains__(self, project_id: object) -> bool:
        return project_id in self._projects


# -- Helper Functions ---------------------------------------------------------

def _project_from_entry(index: int, entry: Any, base_dir: str | None) -> Project:
    """Validate one raw config entry and turn it into a Project."""
    if not isinstance(entry, dict):
        raise ConfigError(f"projects[{index}] must be an object")

    project_id = entry.get("id")
    if not isinstance(project_id, str) or not project_id.strip():
        raise ConfigError(f"projects[{index}].id must be a non-empty string")

    root = entry.get("root")
    if not isinstance(root, str) or not root.strip():
        raise ConfigError(f"projects[{index}].root must be a non-empty string")

    name = entry.get("name") or project_id
    if not isinstance(name, str):
        raise ConfigError(f"projects[{index}].name must be a string")

    allowed = entry.get("allowedCommands") or []
    if not isinstance(allowed, list) or not all(isinstance(c, str) for c in allowed):
        raise ConfigError(f"projects[{index}].allowedCommands must be a list of strings")

    root = os.path.expanduser(root)
    if not os.path.isabs(root):
        root = os.path.join(base_dir or os.getcwd(), root)

    return Project(
        id=project_id,
        name=name,
        root=os.path.normpath(os.path.abspath(root)),
        allowed_commands=tuple(allowed),
    )
