"""
Shared pydantic base for wire-facing models.

Blueprints, runs and codegen bundles travel as camelCase JSON (the canvas and
the run query surface both speak it), while Python code uses snake_case
attribute names. Either spelling is accepted on input.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ForgeModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        """Dump with camelCase keys, dropping unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
