"""
Pydantic Schemas for Oracle Tools and Results

Fixed-shape structures exchanged with the oracle. Per-type extraction
schemas are dynamic and compiled from the catalog instead
(see layers/schema/compiler.py).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field


# =============================================================================
# Post-store analysis tool arguments
# =============================================================================

class UpsertSignalArgs(BaseModel):
    """Store a signal: an insight derived from data that has just been stored."""
    trigger_message: str = Field(
        description="What was noticed in the data and why it matters to the organisation"
    )
    relevant_data: Optional[str] = Field(
        description="Any supporting data worth keeping alongside the signal",
        default=None
    )


class UpsertJobArgs(BaseModel):
    """Store a job: follow-up work that needs to be done because of the data."""
    title: str = Field(
        description="Short title of the work to be done"
    )
    description: str = Field(
        description="What needs to be done and why"
    )
    relevant_data: Optional[str] = Field(
        description="Any supporting data the job needs",
        default=None
    )


# =============================================================================
# Open-ended session plumbing
# =============================================================================

@dataclass
class ToolOutcome:
    """What a tool reports back: text for the model, ids of records it touched."""
    message: str
    touched_ids: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class SessionTool:
    """A tool offered to the oracle during an open-ended session."""
    name: str
    description: str
    args_schema: Type[BaseModel]
    func: Callable[[BaseModel], ToolOutcome]

    def to_function_declaration(self) -> Dict[str, Any]:
        """OpenAI-style tool declaration accepted by ``bind_tools``."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_schema.model_json_schema(),
            },
        }


@dataclass
class SessionResult:
    """Result of an open-ended session."""
    output: str = ""
    touched_ids: Dict[str, List[str]] = field(default_factory=dict)
    tool_calls: int = 0
    errors: List[str] = field(default_factory=list)

    def add_touched(self, touched: Dict[str, List[str]]) -> None:
        for type_id, ids in touched.items():
            bucket = self.touched_ids.setdefault(type_id, [])
            for record_id in ids:
                if record_id not in bucket:
                    bucket.append(record_id)
