"""
Blueprint import / export as a single JSON document.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from dappforge.models.blueprint import Blueprint, ValidationIssue
from dappforge.plugins.base import issues_from_validation_error


class BlueprintImportError(Exception):
    """Raised when an imported document is not a well-formed Blueprint."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        messages = "; ".join(f"{i.path}: {i.message}" if i.path else i.message for i in issues)
        super().__init__(f"Invalid blueprint document: {messages}")


def export_blueprint(blueprint: Blueprint) -> str:
    """Serialize to indented camelCase JSON."""
    return json.dumps(blueprint.to_json_dict(), indent=2) + "\n"


def import_blueprint(text: str | bytes) -> Blueprint:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BlueprintImportError([
            ValidationIssue(path="", message=f"Malformed JSON: {exc.msg}", code="INVALID_JSON")
        ]) from exc
    except UnicodeDecodeError as exc:
        raise BlueprintImportError([
            ValidationIssue(path="", message="Document is not valid UTF-8", code="INVALID_JSON")
        ]) from exc

    try:
        return Blueprint.model_validate(data)
    except ValidationError as exc:
        raise BlueprintImportError(
            issues_from_validation_error(exc, code="SCHEMA_VALIDATION")
        ) from exc
