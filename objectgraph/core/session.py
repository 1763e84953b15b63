"""
Per-call session values and batch results.

An IngestionSession is built once per ingestion call and passed explicitly
down the pipeline; nothing about a call is stored on long-lived objects, so
one orchestrator can serve many organisations and requests.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .entities import SchemaCatalog
from .errors import PartialBatchFailure


class IngestionHints(BaseModel):
    """Caller-supplied hints. Accepts the camelCase wire names."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    object_type_id: Optional[str] = Field(default=None, alias="objectTypeId")
    parent_object_id: Optional[str] = Field(default=None, alias="parentObjectId")
    data_description: Optional[str] = Field(default=None, alias="dataDescription")
    required_match_threshold: Optional[float] = Field(
        default=None, alias="requiredMatchThreshold", ge=-1.0, le=1.0
    )
    new_related_ids: Dict[str, List[str]] = Field(default_factory=dict, alias="newRelatedIds")
    process_data_function_description: Optional[str] = Field(
        default=None, alias="processDataFunctionDescription"
    )


@dataclass(frozen=True)
class IngestionSession:
    """Everything one ingestion call needs, fixed for the duration of the call."""
    organisation_id: str
    catalog: SchemaCatalog
    compiled: Any  # CompiledSchema
    dry_run: bool = False
    is_top_level: bool = True
    hints: IngestionHints = field(default_factory=IngestionHints)
    organisation_data: Optional[Dict[str, Any]] = None

    def nested(self, hints: IngestionHints) -> "IngestionSession":
        """Session for a call made from inside this one (e.g. by an analysis tool)."""
        return replace(self, hints=hints, is_top_level=False, dry_run=False)


class ItemStatus(str, Enum):
    """Terminal state of one item."""
    STORED = "stored"
    MERGED = "merged"
    PREVIEWED = "previewed"
    FAILED = "failed"


@dataclass
class PropagationWarning:
    """A reverse edge that could not be written."""
    object_type_id: str
    record_id: str
    error: str

    def __str__(self) -> str:
        return f"Could not link {self.object_type_id} {self.record_id}: {self.error}"


@dataclass
class ItemOutcome:
    """Outcome of one item of a batch."""
    index: int
    status: ItemStatus
    record_id: Optional[str] = None
    object_type_id: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    propagation_warnings: List[PropagationWarning] = field(default_factory=list)
    preview: Optional[Dict[str, Any]] = None

    @property
    def failed(self) -> bool:
        return self.status == ItemStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status.value,
            "recordId": self.record_id,
            "objectTypeId": self.object_type_id,
            "error": self.error,
            "warnings": self.warnings + [str(w) for w in self.propagation_warnings],
        }


@dataclass
class IngestionResult:
    """
    Result of one ingestion call.

    Status codes:
    - 200: every item succeeded
    - 207: some items failed, some succeeded
    - 500: every item failed, or the call aborted before the item loop
    """
    outcomes: List[ItemOutcome] = field(default_factory=list)
    dry_run: bool = False
    aborted_error: Optional[str] = None

    @classmethod
    def aborted(cls, error: str, dry_run: bool = False) -> "IngestionResult":
        return cls(dry_run=dry_run, aborted_error=error)

    @property
    def failures(self) -> List[str]:
        if self.aborted_error:
            return [self.aborted_error]
        return [f"Item {o.index}: {o.error}" for o in self.outcomes if o.failed]

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if not o.failed)

    @property
    def status(self) -> int:
        if self.aborted_error:
            return 500
        if not self.failures:
            return 200
        return 207 if self.succeeded else 500

    @property
    def message(self) -> str:
        if not self.failures:
            return f"Processed {len(self.outcomes)} item(s)"
        return "\n".join(self.failures)

    @property
    def previews(self) -> List[Dict[str, Any]]:
        return [o.preview for o in self.outcomes if o.preview is not None]

    @property
    def data(self) -> Optional[List[Dict[str, Any]]]:
        # Previews are returned alongside failures in dry run
        return self.previews if self.dry_run else None

    def to_response(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "data": self.data,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure when any item failed or the call aborted."""
        if self.failures:
            raise PartialBatchFailure(self.failures, succeeded=self.succeeded)
