"""
Tests for blueprint JSON import/export.
"""

import json
import pytest

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from dappforge.models.blueprint import Blueprint
from dappforge.services.blueprint_io import BlueprintImportError, export_blueprint, import_blueprint

BLUEPRINT_ID = "00000000-0000-4000-8000-000000000000"
NODE_ID = "00000000-0000-4000-8000-000000000001"


def _blueprint():
    return Blueprint.model_validate({
        "id": BLUEPRINT_ID,
        "nodes": [
            {
                "id": NODE_ID,
                "type": "stylus-contract",
                "config": {"contractName": "Token"},
                "position": {"x": 10, "y": 20},
                "label": "Token",
            }
        ],
        "config": {"project": {"name": "IO Test"}, "generateDocs": False},
        "viewport": {"x": 0, "y": 0, "zoom": 1},
    })


def test_export_is_camel_case_json():
    document = json.loads(export_blueprint(_blueprint()))
    assert document["id"] == BLUEPRINT_ID
    assert document["config"]["generateDocs"] is False
    assert document["config"]["network"]["chainId"] == 421614
    assert "createdAt" in document


def test_round_trip_preserves_blueprint():
    original = _blueprint()
    restored = import_blueprint(export_blueprint(original))
    assert restored == original


def test_import_accepts_bytes():
    text = export_blueprint(_blueprint()).encode("utf-8")
    assert import_blueprint(text).id == BLUEPRINT_ID


def test_import_malformed_json():
    with pytest.raises(BlueprintImportError) as exc_info:
        import_blueprint('{"id": ')
    assert [issue.code for issue in exc_info.value.issues] == ["INVALID_JSON"]


def test_import_invalid_utf8():
    with pytest.raises(BlueprintImportError) as exc_info:
        import_blueprint(b"\xff\xfe{}")
    assert exc_info.value.issues[0].code == "INVALID_JSON"


def test_import_wrong_shape():
    with pytest.raises(BlueprintImportError) as exc_info:
        import_blueprint(json.dumps({"id": BLUEPRINT_ID, "nodes": []}))
    codes = {issue.code for issue in exc_info.value.issues}
    paths = {issue.path for issue in exc_info.value.issues}
    assert codes == {"SCHEMA_VALIDATION"}
    assert {"nodes", "config"} <= paths
