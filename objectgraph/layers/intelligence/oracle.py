"""
Oracle - Classification, Extraction, Merge and Open-Ended Sessions

The oracle is the only component that interprets unstructured data. The
pipeline uses it for:
- classify: choose an object type id for a payload
- extract: fill a type's extraction schema from a payload
- merge: reconcile an existing record with new data (semantic merge)
- resolve_best_match: choose a parent among candidate records
- run_open_ended_session: free-form analysis with tools (post-store analysis)

Every operation returns raw structured answers; validating them against
the catalog is the caller's job. Any failure to produce an answer raises
OracleError.

Implementations:
- LangChainOracle: chat model from config/providers.py, structured output
  through function calling, tool loop through ``bind_tools``
- MockOracle: deterministic keyword-based oracle for tests and offline runs
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import json
import logging
import re

from ...config.settings import IngestionConfig, get_settings
from ...core.errors import OracleError
from ..schema.compiler import ExtractionSchema, TypeDescription
from ..storage.merge import merge_structural
from .prompts import (
    ANALYSIS_USER_TEMPLATE,
    CLASSIFY_FUNCTION_NAME,
    CLASSIFY_USER_TEMPLATE,
    EXTRACT_FUNCTION_DESCRIPTION,
    EXTRACT_FUNCTION_NAME,
    EXTRACT_USER_TEMPLATE,
    GUIDANCE_SUFFIX,
    MERGE_USER_TEMPLATE,
    PARENT_FUNCTION_NAME,
    PARENT_USER_TEMPLATE,
    STORED_DATA_MARKER,
    UNKNOWN_OBJECT_TYPE
)
from .schemas import SessionResult, SessionTool

logger = logging.getLogger(__name__)


def to_prompt_text(value: Any) -> str:
    """Render a payload for a prompt."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, indent=2)


class Oracle(ABC):
    """Abstract oracle used by the ingestion pipeline."""

    @abstractmethod
    def classify(self, candidates: Dict[str, Dict[str, Any]], payload: Any) -> str:
        """
        Choose the object type a payload most likely represents.

        Args:
            candidates: Type id -> prompt description of that type
            payload: Raw item

        Returns:
            One of the candidate ids, or ``"unknown"``
        """
        pass

    @abstractmethod
    def extract(
        self,
        schema: ExtractionSchema,
        payload: Any,
        type_description: TypeDescription,
        guidance: Optional[str] = None,
        function_description: Optional[str] = None
    ) -> Dict[str, Any]:
        """Fill ``schema`` from ``payload``. The answer is not validated."""
        pass

    @abstractmethod
    def merge(
        self,
        schema: ExtractionSchema,
        existing: Dict[str, Any],
        incoming: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Reconcile existing metadata with new metadata into one answer for ``schema``."""
        pass

    @abstractmethod
    def resolve_best_match(
        self,
        candidates: List[Dict[str, Any]],
        target: Dict[str, Any],
        parent_type_id: str
    ) -> Optional[str]:
        """Return the id of the best parent among ``candidates`` (rows), or None."""
        pass

    @abstractmethod
    def run_open_ended_session(self, prompt: str, tools: List[SessionTool]) -> SessionResult:
        """Run a free-form session in which the oracle may call ``tools``."""
        pass


# =============================================================================
# LangChain Oracle
# =============================================================================

class LangChainOracle(Oracle):
    """
    Oracle backed by a LangChain chat model.

    Structured answers use ``with_structured_output`` with dict schemas so
    the per-organisation extraction schemas can be sent as-is.
    """

    def __init__(self, llm_provider=None, config: IngestionConfig = None):
        """
        Initialize the oracle.

        Args:
            llm_provider: LLMProvider instance (optional, will create default)
            config: Ingestion settings (optional)
        """
        self._provider = llm_provider
        self.config = config or get_settings().ingestion

    def _get_provider(self):
        """Lazy load LLM provider."""
        if self._provider is None:
            from ...config.providers import LLMProvider
            self._provider = LLMProvider()
        return self._provider

    def _invoke_structured(self, schema: Dict[str, Any], template: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        from langchain_core.prompts import ChatPromptTemplate

        prompt = ChatPromptTemplate.from_messages([
            ("system", "{system_instruction}"),
            ("human", template)
        ])

        try:
            chain = prompt | self._get_provider().with_structured_output(schema)
            answer = chain.invoke({"system_instruction": self.config.system_instruction, **variables})
        except Exception as e:
            raise OracleError(f"Oracle call '{schema['title']}' failed: {e}") from e

        if not isinstance(answer, dict):
            raise OracleError(f"Oracle call '{schema['title']}' returned no structured answer")
        return answer

    def classify(self, candidates: Dict[str, Dict[str, Any]], payload: Any) -> str:
        schema = {
            "title": CLASSIFY_FUNCTION_NAME,
            "description": "Predict which object type the data is most likely referencing.",
            "type": "object",
            "properties": {
                "predictedObjectTypeId": {
                    "type": "string",
                    "description": "The id of the predicted object type, or 'unknown' when none fits",
                    "enum": list(candidates) + [UNKNOWN_OBJECT_TYPE],
                }
            },
            "required": ["predictedObjectTypeId"],
        }

        answer = self._invoke_structured(schema, CLASSIFY_USER_TEMPLATE, {
            "function_name": CLASSIFY_FUNCTION_NAME,
            "object_types": to_prompt_text(candidates),
            "payload": to_prompt_text(payload),
        })
        return str(answer.get("predictedObjectTypeId") or UNKNOWN_OBJECT_TYPE)

    def extract(
        self,
        schema: ExtractionSchema,
        payload: Any,
        type_description: TypeDescription,
        guidance: Optional[str] = None,
        function_description: Optional[str] = None
    ) -> Dict[str, Any]:
        json_schema = schema.to_json_schema(
            title=EXTRACT_FUNCTION_NAME,
            description=function_description or EXTRACT_FUNCTION_DESCRIPTION
        )
        suffix = GUIDANCE_SUFFIX.format(data_description=guidance) if guidance else ""

        return self._invoke_structured(json_schema, EXTRACT_USER_TEMPLATE, {
            "function_name": EXTRACT_FUNCTION_NAME,
            "payload": to_prompt_text(payload),
            "type_name": type_description.name,
            "type_description": type_description.description,
            "guidance": suffix,
        })

    def merge(
        self,
        schema: ExtractionSchema,
        existing: Dict[str, Any],
        incoming: Dict[str, Any]
    ) -> Dict[str, Any]:
        json_schema = schema.to_json_schema(
            title=EXTRACT_FUNCTION_NAME,
            description="Produce the updated object's data, reconciling the existing data with the new data."
        )
        return self._invoke_structured(json_schema, MERGE_USER_TEMPLATE, {
            "function_name": EXTRACT_FUNCTION_NAME,
            "existing": to_prompt_text(existing),
            "incoming": to_prompt_text(incoming),
        })

    def resolve_best_match(
        self,
        candidates: List[Dict[str, Any]],
        target: Dict[str, Any],
        parent_type_id: str
    ) -> Optional[str]:
        if not candidates:
            return None

        ids = [c["id"] for c in candidates]
        schema = {
            "title": PARENT_FUNCTION_NAME,
            "description": "Predict which object is the most appropriate parent.",
            "type": "object",
            "properties": {
                "predictedParentId": {
                    "type": "string",
                    "description": "The id of the predicted parent object",
                    "enum": ids,
                }
            },
            "required": ["predictedParentId"],
        }

        answer = self._invoke_structured(schema, PARENT_USER_TEMPLATE, {
            "function_name": PARENT_FUNCTION_NAME,
            "parent_type_id": parent_type_id,
            "target": to_prompt_text(target),
            "candidates": to_prompt_text([
                {"id": c["id"], "metadata": c.get("metadata")} for c in candidates
            ]),
        })
        return answer.get("predictedParentId")

    def run_open_ended_session(self, prompt: str, tools: List[SessionTool]) -> SessionResult:
        from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage

        result = SessionResult()
        tools_by_name = {tool.name: tool for tool in tools}

        try:
            model = self._get_provider().with_tools([t.to_function_declaration() for t in tools])
        except Exception as e:
            raise OracleError(f"Unable to bind tools for open-ended session: {e}") from e

        messages = [SystemMessage(content=self.config.system_instruction), HumanMessage(content=prompt)]

        for _ in range(self.config.max_tool_iterations):
            try:
                reply = model.invoke(messages)
            except Exception as e:
                raise OracleError(f"Open-ended session failed: {e}") from e

            messages.append(reply)
            result.output = reply.content if isinstance(reply.content, str) else to_prompt_text(reply.content)

            if not reply.tool_calls:
                break

            for call in reply.tool_calls:
                content = self._run_tool(tools_by_name, call, result)
                messages.append(ToolMessage(content=content, tool_call_id=call["id"]))
        else:
            logger.warning("Open-ended session stopped after %d iterations", self.config.max_tool_iterations)

        return result

    @staticmethod
    def _run_tool(tools_by_name: Dict[str, SessionTool], call: Dict[str, Any], result: SessionResult) -> str:
        tool = tools_by_name.get(call["name"])
        result.tool_calls += 1
        if tool is None:
            result.errors.append(f"Unknown tool: {call['name']}")
            return f"Error: unknown tool '{call['name']}'"

        # Tool failures are reported back to the model so the session can continue
        try:
            outcome = tool.func(tool.args_schema.model_validate(call.get("args") or {}))
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool.name, e)
            result.errors.append(f"{tool.name}: {e}")
            return f"Error: {e}"

        result.add_touched(outcome.touched_ids)
        return outcome.message


# =============================================================================
# Mock Oracle
# =============================================================================

_TOKEN = re.compile(r"[a-z0-9]+")


def _tokens(value: Any) -> set:
    return set(_TOKEN.findall(to_prompt_text(value).lower()))


class MockOracle(Oracle):
    """
    Deterministic oracle for tests and offline runs.

    - classify: candidate sharing the most words with the payload
    - extract: payload keys matched to field ids or names
    - merge: structural merge of the two answers
    - resolve_best_match: candidate sharing the most words with the target
    - run_open_ended_session: stores one signal when a signal tool is offered
    """

    def __init__(self):
        self.calls: List[str] = []

    def classify(self, candidates: Dict[str, Dict[str, Any]], payload: Any) -> str:
        self.calls.append("classify")
        payload_tokens = _tokens(payload)

        best, best_score = UNKNOWN_OBJECT_TYPE, 0
        for type_id, description in candidates.items():
            score = len(payload_tokens & (_tokens(type_id) | _tokens(description)))
            if score > best_score:
                best, best_score = type_id, score
        return best

    def extract(
        self,
        schema: ExtractionSchema,
        payload: Any,
        type_description: TypeDescription,
        guidance: Optional[str] = None,
        function_description: Optional[str] = None
    ) -> Dict[str, Any]:
        self.calls.append("extract")
        source = payload if isinstance(payload, dict) else {}
        lowered = {str(k).lower(): v for k, v in source.items()}

        answer: Dict[str, Any] = {}
        for compiled in schema.fields:
            value = lowered.get(compiled.id.lower(), lowered.get(compiled.name.lower()))
            if value is None and compiled.is_required and compiled.data_type == "string":
                # Free text payloads still yield their required text field
                value = to_prompt_text(payload)[:200]
            if value is not None and compiled.is_array and not isinstance(value, list):
                value = [value]
            answer[compiled.id] = value
        return answer

    def merge(
        self,
        schema: ExtractionSchema,
        existing: Dict[str, Any],
        incoming: Dict[str, Any]
    ) -> Dict[str, Any]:
        self.calls.append("merge")
        present = {k: v for k, v in incoming.items() if v is not None}
        merged = merge_structural(existing, present)
        return {fid: merged.get(fid) for fid in schema.field_ids}

    def resolve_best_match(
        self,
        candidates: List[Dict[str, Any]],
        target: Dict[str, Any],
        parent_type_id: str
    ) -> Optional[str]:
        self.calls.append("resolve_best_match")
        if not candidates:
            return None
        target_tokens = _tokens(target)
        best = max(candidates, key=lambda c: len(target_tokens & _tokens(c.get("metadata"))))
        return best["id"]

    def run_open_ended_session(self, prompt: str, tools: List[SessionTool]) -> SessionResult:
        self.calls.append("run_open_ended_session")
        result = SessionResult(output="Analysis complete.")

        signal_tool = next((t for t in tools if t.name == "upsert_signal"), None)
        if signal_tool is None:
            return result

        args = signal_tool.args_schema.model_validate({
            "trigger_message": "New data stored: " + " ".join(prompt.split(STORED_DATA_MARKER)[-1].split())[:200],
        })
        result.tool_calls += 1
        try:
            outcome = signal_tool.func(args)
        except Exception as e:
            result.errors.append(f"{signal_tool.name}: {e}")
            return result
        result.add_touched(outcome.touched_ids)
        return result


def build_analysis_prompt(
    config: IngestionConfig,
    record: Dict[str, Any],
    signal_description: Optional[TypeDescription],
    job_description: Optional[TypeDescription],
    organisation: Optional[Dict[str, Any]] = None
) -> str:
    """Prompt for the post-store analysis session."""
    return ANALYSIS_USER_TEMPLATE.format(
        analysis_instruction=config.analysis_instruction,
        organisation=to_prompt_text(organisation) if organisation else "n/a",
        signal_description=to_prompt_text(signal_description.to_dict()) if signal_description else "n/a",
        job_description=to_prompt_text(job_description.to_dict()) if job_description else "n/a",
        record=to_prompt_text(record)
    )
