"""
Intelligence Layer - the oracle behind classification, extraction and analysis.
"""

from .oracle import (
    Oracle,
    LangChainOracle,
    MockOracle,
    build_analysis_prompt,
    to_prompt_text
)
from .schemas import (
    UpsertSignalArgs,
    UpsertJobArgs,
    ToolOutcome,
    SessionTool,
    SessionResult
)

__all__ = [
    "Oracle",
    "LangChainOracle",
    "MockOracle",
    "build_analysis_prompt",
    "to_prompt_text",
    "UpsertSignalArgs",
    "UpsertJobArgs",
    "ToolOutcome",
    "SessionTool",
    "SessionResult",
]
