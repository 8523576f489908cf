"""Unit tests for registry.py - project lookup and config validation."""

import dataclasses
import os

import pytest

from agent.errors import ConfigError, ProjectNotFound
from agent.registry import Project, ProjectRegistry


class TestProjectRegistry:
    """Test lookup over the immutable project set."""

    def test_find_existing_project(self, registry, project_root):
        project = registry.find("demo")
        assert project.name == "Demo"
        assert project.root == str(project_root)

    def test_find_unknown_project(self, registry):
        with pytest.raises(ProjectNotFound, match="project not found"):
            registry.find("nope")

    def test_iteration_keeps_config_order(self, registry):
        assert [p.id for p in registry] == ["demo", "locked"]
        assert len(registry) == 2
        assert "demo" in registry
        assert "nope" not in registry

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate project id"):
            ProjectRegistry([
                Project(id="a", name="A", root="/a"),
                Project(id="a", name="A2", root="/b"),
            ])

    def test_projects_are_immutable(self, registry):
        project = registry.find("demo")
        with pytest.raises(dataclasses.FrozenInstanceError):
            project.root = "/"

    def test_describe_full_and_public(self, registry, project_root):
        full = registry.describe()
        assert full[0] == {
            "id": "demo",
            "name": "Demo",
            "root": str(project_root),
            "allowedCommands": ["echo", "ls", "exit", "sleep", "yes", "env"],
        }
        public = registry.describe(public=True)
        assert public[0] == {"id": "demo", "name": "Demo"}


class TestFromConfig:
    """Test building a registry from raw configuration entries."""

    def test_basic_entry(self, tmp_path):
        registry = ProjectRegistry.from_config([
            {"id": "web", "name": "Web", "root": str(tmp_path), "allowedCommands": ["npm"]},
        ])
        project = registry.find("web")
        assert project.allowed_commands == ("npm",)
        assert project.root == str(tmp_path)

    def test_root_is_normalized(self, tmp_path):
        registry = ProjectRegistry.from_config([
            {"id": "web", "root": str(tmp_path) + "/sub/../"},
        ])
        assert registry.find("web").root == str(tmp_path)

    def test_relative_root_resolved_against_base_dir(self, tmp_path):
        registry = ProjectRegistry.from_config(
            [{"id": "web", "root": "projects/web"}],
            base_dir=str(tmp_path),
        )
        assert registry.find("web").root == os.path.join(str(tmp_path), "projects", "web")

    def test_name_defaults_to_id(self, tmp_path):
        registry = ProjectRegistry.from_config([{"id": "web", "root": str(tmp_path)}])
        assert registry.find("web").name == "web"
        assert registry.find("web").allowed_commands == ()

    def test_none_means_no_projects(self):
        assert len(ProjectRegistry.from_config(None)) == 0

    @pytest.mark.parametrize(
        "entries",
        [
            {"id": "x"},
            ["not-an-object"],
            [{"root": "/tmp"}],
            [{"id": "", "root": "/tmp"}],
            [{"id": "x"}],
            [{"id": "x", "root": "/tmp", "allowedCommands": "npm"}],
            [{"id": "x", "root": "/tmp", "allowedCommands": [1, 2]}],
        ],
    )
    def test_invalid_entries_rejected(self, entries):
        with pytest.raises(ConfigError):
            ProjectRegistry.from_config(entries)

    def test_duplicate_ids_in_config_rejected(self, tmp_path):
        with pytest.raises(ConfigError):
            ProjectRegistry.from_config([
                {"id": "x", "root": str(tmp_path)},
                {"id": "x", "root": str(tmp_path)},
            ])
