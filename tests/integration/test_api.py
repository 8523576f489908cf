"""Integration tests for the HTTP surface, driven through TestClient."""

from datetime import datetime

from fastapi.testclient import TestClient

from server.main import create_app


class TestInfoRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_projects_full_by_default(self, client, project_root):
        response = client.get("/projects")
        assert response.status_code == 200
        assert response.json() == [{
            "id": "demo",
            "name": "Demo",
            "root": str(project_root),
            "allowedCommands": ["echo", "exit"],
        }]

    def test_projects_public(self, agent_config, write_config):
        agent_config["server"]["public_projects"] = True
        app = create_app(write_config(agent_config), enable_announce=False, echo_logs=False)
        with TestClient(app) as c:
            assert c.get("/projects").json() == [{"id": "demo", "name": "Demo"}]

    def test_unknown_route_uses_error_shape(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert "error" in response.json()


class TestListFilesRoute:

    def test_list_root(self, client):
        response = client.post("/tools/list_files", json={"projectId": "demo", "path": ""})
        assert response.status_code == 200
        assert response.json() == [
            {"name": "README.md", "isDir": False, "size": 7},
            {"name": "docs", "isDir": True},
            {"name": "src", "isDir": True},
        ]

    def test_path_defaults_to_root(self, client):
        response = client.post("/tools/list_files", json={"projectId": "demo"})
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_unknown_project(self, client):
        response = client.post("/tools/list_files", json={"projectId": "nope", "path": ""})
        assert response.status_code == 404
        assert response.json() == {"error": "project not found"}

    def test_traversal(self, client):
        response = client.post("/tools/list_files", json={"projectId": "demo", "path": "../.."})
        assert response.status_code == 403
        assert response.json()["error"].startswith("path traversal not allowed")

    def test_missing_directory(self, client):
        response = client.post("/tools/list_files", json={"projectId": "demo", "path": "nope"})
        assert response.status_code == 500
        assert response.json() == {"error": "failed to read directory"}


class TestReadFileRoute:

    def test_read(self, client):
        response = client.post("/tools/read_file", json={"projectId": "demo", "path": "README.md"})
        assert response.status_code == 200
        assert response.json() == {"content": "# demo\n", "encoding": "utf-8"}

    def test_missing_file(self, client):
        response = client.post("/tools/read_file", json={"projectId": "demo", "path": "gone.txt"})
        assert response.status_code == 500
        assert response.json() == {"error": "failed to read file"}

    def test_missing_path_field(self, client):
        response = client.post("/tools/read_file", json={"projectId": "demo"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("invalid request")

    def test_invalid_json_body(self, client):
        response = client.post(
            "/tools/read_file",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_absolute_path_rejected(self, client):
        response = client.post("/tools/read_file", json={"projectId": "demo", "path": "/etc/passwd"})
        assert response.status_code == 403


class TestApplyPatchRoute:

    def test_all_applied_omits_errors(self, client, project_root):
        response = client.post("/tools/apply_patch", json={
            "projectId": "demo",
            "operations": [
                {"op": "create", "path": "a/b.txt", "content": "hi"},
                {"op": "delete", "path": "README.md"},
            ],
        })
        assert response.status_code == 200
        assert response.json() == {"applied": 2}
        assert (project_root / "a" / "b.txt").read_text() == "hi"

    def test_partial_failure_lists_errors(self, client, project_root):
        response = client.post("/tools/apply_patch", json={
            "projectId": "demo",
            "operations": [
                {"op": "create", "path": "one.txt", "content": "1"},
                {"op": "delete", "path": "missing.txt"},
                {"op": "create", "path": "../outside.txt", "content": "x"},
                {"op": "chmod", "path": "one.txt"},
            ],
        })
        body = response.json()
        assert response.status_code == 200
        assert body["applied"] == 1
        assert len(body["errors"]) == 3
        assert body["errors"][2] == "unknown operation: chmod"
        assert (project_root / "one.txt").exists()
        assert not (project_root.parent / "outside.txt").exists()

    def test_unencodable_content_does_not_abort_batch(self, client, project_root):
        body = (
            b'{"projectId": "demo", "operations": ['
            b'{"op": "create", "path": "a.txt", "content": "x\\ud800y"},'
            b'{"op": "create", "path": "b.txt", "content": "ok"}]}'
        )
        response = client.post(
            "/tools/apply_patch",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        result = response.json()
        assert result["applied"] == 1
        assert result["errors"][0].startswith("invalid content")
        assert (project_root / "b.txt").read_text() == "ok"

    def test_operations_required(self, client):
        response = client.post("/tools/apply_patch", json={"projectId": "demo"})
        assert response.status_code == 400

    def test_unknown_project(self, client):
        response = client.post("/tools/apply_patch", json={"projectId": "nope", "operations": []})
        assert response.status_code == 404


class TestRunCommandRoute:

    def test_echo(self, client):
        response = client.post("/tools/run_command", json={"projectId": "demo", "command": "echo hello"})
        assert response.status_code == 200
        body = response.json()
        assert body["stdout"] == "hello\n"
        assert body["stderr"] == ""
        assert body["exitCode"] == 0
        assert body["truncated"] is False

    def test_nonzero_exit_is_200(self, client):
        response = client.post("/tools/run_command", json={"projectId": "demo", "command": "exit 2"})
        assert response.status_code == 200
        assert response.json()["exitCode"] == 2

    def test_not_allowed(self, client):
        response = client.post("/tools/run_command", json={"projectId": "demo", "command": "rm -rf /"})
        assert response.status_code == 403
        assert response.json() == {"error": "command not allowed"}

    def test_timeout(self, agent_config, write_config):
        agent_config["projects"][0]["allowedCommands"] = ["sleep"]
        agent_config["tools"] = {"command_timeout": 0.5}
        app = create_app(write_config(agent_config), enable_announce=False, echo_logs=False)
        with TestClient(app) as c:
            response = c.post("/tools/run_command", json={"projectId": "demo", "command": "sleep 5"})
        assert response.status_code == 504
        assert "timed out" in response.json()["error"]


class TestMiddleware:

    def test_cors_preflight(self, client):
        response = client.options("/tools/read_file", headers={
            "Origin": "http://controller.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        })
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_header_on_simple_request(self, client):
        response = client.get("/health", headers={"Origin": "http://controller.example"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_requests_are_audited(self, client, tmp_path):
        client.post("/tools/read_file", json={"projectId": "demo", "path": "README.md"})
        client.get("/health")

        log_file = tmp_path / "logs" / f"{datetime.now().strftime('%Y-%m-%d')}.log"
        text = log_file.read_text()
        assert "[AUDIT] POST /tools/read_file (Node: test-node)" in text
        assert "[ALLOW] /tools/read_file access granted" in text
        assert "[TOOL] read_file" in text
        assert "[RESULT] read_file ok" in text
        assert "[ALLOW] /health" not in text
        assert "[START] DevPilot Agent [test-node]" in text
