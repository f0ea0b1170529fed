"""Run state of a full sync and its checkpoint format.

``RunState`` is the only mutable state of a run. It is checkpointed as a JSON
object after every step; ``schema_version`` guards against resuming a
checkpoint written by an incompatible release.

Checkpoint shape (version 1)::

    {
        "schema_version": 1,
        "offset": 700,
        "is_first_step": false,
        "queue": [{"indexable": "post", "put_mapping": true,
                   "tenant_id": 2, "tenant_url": "https://b.example.com"}],
        "current_item": {"indexable": "post", "put_mapping": false,
                         "tenant_id": 1, "tenant_url": "https://a.example.com"},
        "alias_backlog": ["post"],
        "found_items": 1200
    }
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import CheckpointSchemaError

CHECKPOINT_SCHEMA_VERSION = 1


class WorkItem(BaseModel):
    """One indexable to sync, for one tenant or globally.

    Global items carry no tenant fields; per-tenant items carry both.
    """

    model_config = ConfigDict(extra="forbid")

    indexable: str = Field(..., min_length=1)
    put_mapping: bool = False
    tenant_id: Optional[int] = None
    tenant_url: Optional[str] = None

    @model_validator(mode="after")
    def _tenant_fields_together(self) -> "WorkItem":
        if (self.tenant_id is None) != (self.tenant_url is None):
            raise ValueError("tenant_id and tenant_url must be set together")
        return self

    @property
    def is_global(self) -> bool:
        """Whether this item targets a global indexable."""
        return self.tenant_id is None


class RunState(BaseModel):
    """Queue, cursor, and alias backlog of an in-flight full sync."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = CHECKPOINT_SCHEMA_VERSION
    offset: int = Field(default=0, ge=0)
    is_first_step: bool = True
    queue: List[WorkItem] = Field(default_factory=list)
    current_item: Optional[WorkItem] = None
    alias_backlog: List[str] = Field(default_factory=list)
    found_items: int = Field(default=0, ge=0)

    @field_validator("alias_backlog")
    @classmethod
    def _dedupe_backlog(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    def has_items(self) -> bool:
        """Whether an item is in progress or still queued."""
        return self.current_item is not None or len(self.queue) > 0

    def to_checkpoint(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible checkpoint form."""
        return self.model_dump(mode="json")

    @classmethod
    def from_checkpoint(cls, data: Any) -> "RunState":
        """Validate and load a checkpoint.

        Raises ``CheckpointSchemaError`` for anything that is not a valid
        checkpoint of the current schema version.
        """
        if not isinstance(data, dict):
            raise CheckpointSchemaError(f"Checkpoint must be an object, got {type(data).__name__}")

        version = data.get("schema_version")
        if version != CHECKPOINT_SCHEMA_VERSION:
            raise CheckpointSchemaError(
                f"Unsupported checkpoint schema version {version!r} (expected {CHECKPOINT_SCHEMA_VERSION})"
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise CheckpointSchemaError(str(e)) from e
