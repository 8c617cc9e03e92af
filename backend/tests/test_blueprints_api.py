"""
Tests for the blueprint and plugin endpoints: validate, generate (background
and inline), import/export, and the plugin catalogue.
"""

import json
import pytest
from fastapi.testclient import TestClient

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from dappforge.main import app
from dappforge.api.dependencies import get_run_store
from dappforge.services.run_store import InMemoryRunStore

BLUEPRINT_ID = "00000000-0000-4000-8000-000000000000"
CONTRACT_ID = "11111111-1111-4111-8111-111111111111"
FRONTEND_ID = "22222222-2222-4222-8222-222222222222"
EDGE_ID = "33333333-3333-4333-8333-333333333333"


def get_test_blueprint():
    """Contract feeding a Next.js scaffold."""
    return {
        "id": BLUEPRINT_ID,
        "nodes": [
            {
                "id": CONTRACT_ID,
                "type": "stylus-contract",
                "position": {"x": 100, "y": 200},
                "config": {"contractName": "Token", "contractType": "erc20"},
            },
            {
                "id": FRONTEND_ID,
                "type": "frontend-scaffold",
                "position": {"x": 400, "y": 200},
                "config": {"appName": "Token App"},
            },
        ],
        "edges": [{"id": EDGE_ID, "source": CONTRACT_ID, "target": FRONTEND_ID}],
        "config": {"project": {"name": "Token DApp"}},
    }


def get_invalid_blueprint():
    blueprint = get_test_blueprint()
    blueprint["nodes"][0]["config"] = {"contractName": "not valid"}
    return blueprint


@pytest.fixture
def store():
    return InMemoryRunStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_run_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# POST /blueprints/validate
# ============================================================================


class TestValidate:
    def test_valid_blueprint(self, client):
        response = client.post("/blueprints/validate", json={"blueprint": get_test_blueprint()})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["errors"] == []

    def test_invalid_blueprint(self, client):
        response = client.post("/blueprints/validate", json={"blueprint": get_invalid_blueprint()})
        assert response.status_code == 400
        data = response.json()
        assert data["valid"] is False
        assert data["errors"][0]["code"] == "NODE_CONFIG_INVALID"
        assert data["errors"][0]["nodeId"] == CONTRACT_ID
        assert data["errors"][0]["path"] == f"nodes.{CONTRACT_ID}.config.contractName"

    def test_missing_body_field(self, client):
        assert client.post("/blueprints/validate", json={}).status_code == 422


# ============================================================================
# POST /blueprints/generate
# ============================================================================


class TestGenerate:
    def test_generate_runs_in_background(self, client, store):
        response = client.post("/blueprints/generate", json={"blueprint": get_test_blueprint()})
        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "pending"

        # TestClient drains background tasks before returning
        run = client.get(f"/runs/{data['runId']}").json()
        assert run["status"] == "completed"
        assert run["blueprintId"] == BLUEPRINT_ID

        artifacts = client.get(f"/runs/{data['runId']}/artifacts").json()["artifacts"]
        tree = next(a for a in artifacts if a["kind"] == "file-tree")
        paths = [f["path"] for f in tree["manifest"]["files"]]
        assert "contracts/token/src/lib.rs" in paths
        assert "apps/web/src/app/providers.tsx" in paths

    def test_generate_rejects_invalid_blueprint(self, client, store):
        response = client.post("/blueprints/generate", json={"blueprint": get_invalid_blueprint()})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "ValidationFailed"
        assert detail["errors"][0]["code"] == "NODE_CONFIG_INVALID"
        assert store._runs == {}

    def test_generate_sync(self, client):
        response = client.post("/blueprints/generate/sync", json={"blueprint": get_test_blueprint()})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["result"]["success"] is True
        files = {f["path"]: f["content"] for f in data["result"]["manifest"]["files"]}
        assert "TokenABI" in files["apps/web/src/hooks/useContracts.ts"]
        messages = [entry["message"] for entry in data["logs"]]
        assert messages[0] == "Execution started"
        assert messages[-1] == "Execution completed successfully"


# ============================================================================
# Import / export
# ============================================================================


class TestImportExport:
    def test_export_then_import(self, client):
        exported = client.post("/blueprints/export", json={"blueprint": get_test_blueprint()})
        assert exported.status_code == 200
        assert exported.headers["content-type"].startswith("application/json")
        document = json.loads(exported.text)
        assert document["nodes"][0]["config"]["contractName"] == "Token"

        imported = client.post(
            "/blueprints/import",
            content=exported.text,
            headers={"Content-Type": "application/json"},
        )
        assert imported.status_code == 200
        data = imported.json()
        assert data["blueprint"]["id"] == BLUEPRINT_ID
        assert data["validation"]["valid"] is True

    def test_export_rejects_malformed_blueprint(self, client):
        response = client.post("/blueprints/export", json={"blueprint": {"id": "nope"}})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "InvalidBlueprint"

    def test_import_bad_json(self, client):
        response = client.post("/blueprints/import", content="{not json")
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "InvalidBlueprint"
        assert detail["issues"][0]["code"] == "INVALID_JSON"

    def test_import_reports_semantic_issues(self, client):
        response = client.post("/blueprints/import", content=json.dumps(get_invalid_blueprint()))
        assert response.status_code == 200
        assert response.json()["validation"]["valid"] is False


# ============================================================================
# GET /plugins
# ============================================================================


class TestPluginsEndpoint:
    def test_list_plugins(self, client):
        plugins = client.get("/plugins").json()["plugins"]
        ids = {p["metadata"]["id"] for p in plugins}
        assert ids == {
            "stylus-contract",
            "erc8004-agent-runtime",
            "x402-paywall-api",
            "sdk-generator",
            "frontend-scaffold",
            "wallet-auth",
            "ipfs-storage",
        }

    def test_get_plugin(self, client):
        data = client.get("/plugins/stylus-contract").json()
        assert data["metadata"]["name"] == "Stylus Contract"
        assert "contractName" in data["configSchema"]["properties"]
        assert "contractName" in data["configSchema"]["required"]
        assert {p["id"] for p in data["ports"]} == {"contract-out", "types-out"}

    def test_get_unknown_plugin(self, client):
        response = client.get("/plugins/quantum-oracle")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"
