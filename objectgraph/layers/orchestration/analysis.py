"""
Post-Store Analysis

After a top-level call stores a record whose type triggers analysis, the
oracle runs one open-ended session over it with two tools:
- upsert_signal: store an insight derived from the record
- upsert_job: store follow-up work needed because of the record

Both tools re-enter the batch orchestrator as nested (non-top-level)
calls, so records they create never start another analysis. Each created
record references the source record, and its id is handed back so the
source references it too.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging

from ...config.settings import IngestionConfig, get_settings
from ...core.entities import ObjectRecord
from ...core.errors import IngestionError
from ...core.session import IngestionHints, IngestionSession
from ..intelligence.oracle import Oracle, build_analysis_prompt
from ..intelligence.schemas import SessionTool, ToolOutcome, UpsertJobArgs, UpsertSignalArgs

logger = logging.getLogger(__name__)


SIGNAL_FUNCTION_DESCRIPTION = (
    "Given a trigger message and supporting data, process it into a signal: "
    "an insight the organisation should know about."
)

JOB_FUNCTION_DESCRIPTION = (
    "Given a job title, description and supporting data, process it into a job: "
    "follow-up work the organisation needs to do."
)


@dataclass
class AnalysisOutcome:
    """What an analysis pass produced for the source record."""
    touched_ids: Dict[str, List[str]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    output: str = ""


class PostStoreAnalyzer:
    """Runs the post-store analysis session for a stored record."""

    def __init__(self, orchestrator, oracle: Oracle, config: IngestionConfig = None):
        """
        Args:
            orchestrator: BatchOrchestrator the tools re-enter
            oracle: Oracle running the session
            config: Ingestion settings (optional)
        """
        self._orchestrator = orchestrator
        self._oracle = oracle
        self.config = config or get_settings().ingestion

    def analyse(self, session: IngestionSession, record: ObjectRecord) -> AnalysisOutcome:
        """Analyse ``record``. Failures become warnings; the record stays stored."""
        outcome = AnalysisOutcome()
        if not self.config.analysis_enabled:
            return outcome

        tools = self.build_tools(session, record)
        if not tools:
            logger.info("No signal or job types configured; skipping analysis of %s", record.id)
            return outcome

        descriptions = session.compiled.descriptions
        prompt = build_analysis_prompt(
            self.config,
            {"objectTypeId": record.related_object_type_id, "id": record.id, "metadata": record.metadata},
            descriptions.get(self.config.signal_object_type_id),
            descriptions.get(self.config.job_object_type_id),
            session.organisation_data
        )

        try:
            result = self._oracle.run_open_ended_session(prompt, tools)
        except Exception as e:
            logger.warning("Post-store analysis of %s failed: %s", record.id, e)
            outcome.warnings.append(f"Post-store analysis failed: {e}")
            return outcome

        outcome.touched_ids = result.touched_ids
        outcome.output = result.output
        outcome.warnings.extend(f"Analysis tool error: {error}" for error in result.errors)
        logger.info(
            "Analysed %s %s: %d tool call(s), touched %s",
            record.related_object_type_id, record.id, result.tool_calls, result.touched_ids
        )
        return outcome

    def build_tools(self, session: IngestionSession, record: ObjectRecord) -> List[SessionTool]:
        """Tools for the types configured in this organisation's catalog."""
        tools = []
        signal_type = self.config.signal_object_type_id
        job_type = self.config.job_object_type_id

        if session.catalog.get_object_type(signal_type) is not None:
            tools.append(SessionTool(
                name="upsert_signal",
                description="Store a signal based on your analysis of the data.",
                args_schema=UpsertSignalArgs,
                func=lambda args: self._upsert(
                    session, record, signal_type, args.model_dump(exclude_none=True),
                    SIGNAL_FUNCTION_DESCRIPTION
                )
            ))

        if session.catalog.get_object_type(job_type) is not None:
            tools.append(SessionTool(
                name="upsert_job",
                description="Store a job that needs to be done because of the data.",
                args_schema=UpsertJobArgs,
                func=lambda args: self._upsert(
                    session, record, job_type, args.model_dump(exclude_none=True),
                    JOB_FUNCTION_DESCRIPTION
                )
            ))

        return tools

    def _upsert(
        self,
        session: IngestionSession,
        source: ObjectRecord,
        object_type_id: str,
        payload: Dict[str, Any],
        function_description: Optional[str]
    ) -> ToolOutcome:
        hints = IngestionHints(
            object_type_id=object_type_id,
            required_match_threshold=self.config.signal_match_threshold,
            new_related_ids={source.related_object_type_id: [source.id]},
            process_data_function_description=function_description
        )
        result = self._orchestrator.run(session.nested(hints), [payload])
        if result.failures:
            raise IngestionError(result.message)

        ids = [o.record_id for o in result.outcomes if o.record_id]
        logger.info("Analysis stored %s %s for %s", object_type_id, ids, source.id)
        return ToolOutcome(
            message=json.dumps({"status": "success", "objectTypeId": object_type_id, "ids": ids}),
            touched_ids={object_type_id: ids}
        )
