"""
quill_engine/models/base.py -- Base model shared by every engine record.

Records cross the wire (NDJSON, stored documents, extraction output) in
camelCase, while Python code uses snake_case attributes.  ``CamelModel``
accepts either spelling on input and dumps camelCase with ``by_alias=True``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for all engine models (camelCase aliases, snake_case attributes)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-compatible dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
