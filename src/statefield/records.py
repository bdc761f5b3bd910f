"""In-memory document records handled by ``DocumentStore``."""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, field


@dataclass
class DocumentRecord:
    """A schemaless document: a collection name, an id and a field dict.

    ``new_record`` is True until the document has been saved once.
    """

    collection: str
    doc_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    fields: dict[str, object] = field(default_factory=dict)
    new_record: bool = True

    def get(self, name: str, default: object = None) -> object:
        return self.fields.get(name, default)

    def set(self, name: str, value: object) -> None:
        self.fields[name] = value

    def to_json(self) -> str:
        """Serialize the fields for storage."""
        return json.dumps(self.fields, sort_keys=True, default=str)

    def replace_fields(self, fields: dict[str, object]) -> None:
        """Overwrite every field in place (used by ``DocumentStore.reload``)."""
        self.fields = copy.deepcopy(fields)

    @classmethod
    def from_row(cls, collection: str, doc_id: str, body: str) -> DocumentRecord:
        return cls(collection=collection, doc_id=doc_id, fields=json.loads(body), new_record=False)
