"""
Tests for the LangChain-backed oracle and the deterministic mock oracle.
"""

import pytest
from unittest.mock import Mock

from langchain_core.messages import AIMessage, ToolMessage
from langchain_core.runnables import RunnableLambda

from objectgraph.config.settings import IngestionConfig
from objectgraph.core.errors import OracleError
from objectgraph.layers.intelligence import (
    LangChainOracle,
    MockOracle,
    SessionTool,
    ToolOutcome,
    UpsertSignalArgs
)
from objectgraph.layers.intelligence.prompts import (
    CLASSIFY_FUNCTION_NAME,
    EXTRACT_FUNCTION_DESCRIPTION,
    EXTRACT_FUNCTION_NAME
)


@pytest.fixture
def provider():
    return Mock()


@pytest.fixture
def oracle(provider):
    return LangChainOracle(llm_provider=provider, config=IngestionConfig(max_tool_iterations=3))


def answer_with(provider, answer, received=None):
    """Script the structured-output runnable to return ``answer``."""
    def respond(prompt_value):
        if received is not None:
            received.append(prompt_value.to_messages())
        return answer
    provider.with_structured_output.return_value = RunnableLambda(respond)


class TestStructuredCalls:
    """Classification, extraction, merge and parent choice."""

    def test_classify(self, oracle, provider, compiled):
        received = []
        answer_with(provider, {"predictedObjectTypeId": "feedback"}, received)

        answer = oracle.classify(compiled.candidate_descriptions(), {"title": "Login {fails}"})

        assert answer == "feedback"
        schema = provider.with_structured_output.call_args.args[0]
        assert schema["title"] == CLASSIFY_FUNCTION_NAME
        assert schema["properties"]["predictedObjectTypeId"]["enum"] == ["product", "feature", "feedback", "unknown"]
        system, human = received[0]
        assert system.content == oracle.config.system_instruction
        assert "Login {fails}" in human.content

    def test_classify_without_answer_is_unknown(self, oracle, provider, compiled):
        answer_with(provider, {})
        assert oracle.classify(compiled.candidate_descriptions(), "x") == "unknown"

    def test_extract_uses_type_schema_and_guidance(self, oracle, provider, compiled):
        received = []
        answer_with(provider, {"title": "Login fails"}, received)

        answer = oracle.extract(
            compiled.schema_for("feedback"), "Login fails", compiled.description_for("feedback"),
            guidance="Survey answers"
        )

        assert answer == {"title": "Login fails"}
        schema = provider.with_structured_output.call_args.args[0]
        assert schema["title"] == EXTRACT_FUNCTION_NAME
        assert schema["description"] == EXTRACT_FUNCTION_DESCRIPTION
        assert set(schema["properties"]) == {"title", "severity", "tags", "score"}
        human = received[0][1].content
        assert "Feedback" in human
        assert "Survey answers" in human

    def test_extract_function_description_override(self, oracle, provider, compiled):
        answer_with(provider, {"title": "x"})

        oracle.extract(compiled.schema_for("signal"), "x", compiled.description_for("signal"),
                       function_description="Store a signal")

        assert provider.with_structured_output.call_args.args[0]["description"] == "Store a signal"

    def test_merge(self, oracle, provider, compiled):
        received = []
        answer_with(provider, {"title": "merged"}, received)

        answer = oracle.merge(compiled.schema_for("feedback"), {"title": "old"}, {"title": "new"})

        assert answer == {"title": "merged"}
        human = received[0][1].content
        assert '"old"' in human and '"new"' in human

    def test_resolve_best_match(self, oracle, provider):
        answer_with(provider, {"predictedParentId": "p-2"})
        candidates = [{"id": "p-1", "metadata": {"title": "a"}}, {"id": "p-2", "metadata": {"title": "b"}}]

        assert oracle.resolve_best_match(candidates, {"metadata": {"title": "b"}}, "product") == "p-2"
        schema = provider.with_structured_output.call_args.args[0]
        assert schema["properties"]["predictedParentId"]["enum"] == ["p-1", "p-2"]

    def test_resolve_without_candidates(self, oracle, provider):
        assert oracle.resolve_best_match([], {}, "product") is None
        provider.with_structured_output.assert_not_called()

    def test_model_failure(self, oracle, provider, compiled):
        def fail(_):
            raise RuntimeError("rate limited")
        provider.with_structured_output.return_value = RunnableLambda(fail)

        with pytest.raises(OracleError, match="rate limited"):
            oracle.classify(compiled.candidate_descriptions(), "x")

    def test_non_dict_answer(self, oracle, provider, compiled):
        answer_with(provider, None)

        with pytest.raises(OracleError, match="no structured answer"):
            oracle.classify(compiled.candidate_descriptions(), "x")


class TestOpenEndedSession:
    """Tool loop over a tool-bound chat model."""

    @pytest.fixture
    def signal_tool(self):
        calls = []

        def store(args):
            calls.append(args)
            return ToolOutcome(message="stored", touched_ids={"signal": ["s-1"]})

        tool = SessionTool("upsert_signal", "Store a signal", UpsertSignalArgs, store)
        tool.calls = calls
        return tool

    def test_tool_calls_are_executed_and_reported_back(self, oracle, provider, signal_tool):
        model = Mock()
        model.invoke.side_effect = [
            AIMessage(content="", tool_calls=[
                {"name": "upsert_signal", "args": {"trigger_message": "Logins fail"}, "id": "c1"},
                {"name": "unknown_tool", "args": {}, "id": "c2"},
            ]),
            AIMessage(content="All done"),
        ]
        provider.with_tools.return_value = model

        result = oracle.run_open_ended_session("Analyse this", [signal_tool])

        assert result.output == "All done"
        assert result.touched_ids == {"signal": ["s-1"]}
        assert result.tool_calls == 2
        assert result.errors == ["Unknown tool: unknown_tool"]
        assert signal_tool.calls[0].trigger_message == "Logins fail"

        declarations = provider.with_tools.call_args.args[0]
        assert declarations[0]["function"]["name"] == "upsert_signal"
        assert "trigger_message" in declarations[0]["function"]["parameters"]["properties"]

        tool_messages = [m for m in model.invoke.call_args.args[0] if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tool_messages] == ["c1", "c2"]

    def test_tool_failure_is_reported_to_model(self, oracle, provider):
        def broken(args):
            raise OracleError("cannot store")

        model = Mock()
        model.invoke.side_effect = [
            AIMessage(content="", tool_calls=[{"name": "upsert_signal", "args": {"trigger_message": "x"}, "id": "c1"}]),
            AIMessage(content="Gave up"),
        ]
        provider.with_tools.return_value = model

        result = oracle.run_open_ended_session("Analyse", [SessionTool("upsert_signal", "", UpsertSignalArgs, broken)])

        assert result.errors == ["upsert_signal: cannot store"]
        assert result.touched_ids == {}
        assert "Error: cannot store" in model.invoke.call_args.args[0][-2].content

    def test_iterations_are_bounded(self, oracle, provider, signal_tool):
        model = Mock()
        model.invoke.return_value = AIMessage(
            content="", tool_calls=[{"name": "upsert_signal", "args": {"trigger_message": "x"}, "id": "c"}]
        )
        provider.with_tools.return_value = model

        result = oracle.run_open_ended_session("Analyse", [signal_tool])

        assert model.invoke.call_count == 3
        assert result.tool_calls == 3

    def test_model_failure(self, oracle, provider, signal_tool):
        model = Mock()
        model.invoke.side_effect = RuntimeError("timeout")
        provider.with_tools.return_value = model

        with pytest.raises(OracleError, match="timeout"):
            oracle.run_open_ended_session("Analyse", [signal_tool])


class TestMockOracle:
    """Deterministic behaviour relied on by offline runs."""

    def test_merge_unions_arrays_and_ignores_missing_values(self, compiled):
        oracle = MockOracle()
        schema = compiled.schema_for("feedback")

        merged = oracle.merge(schema, {"title": "a", "tags": ["x"], "severity": "low"},
                              {"title": "b", "tags": ["y"], "severity": None})

        assert merged == {"title": "b", "severity": "low", "tags": ["x", "y"], "score": None}
        assert oracle.calls == ["merge"]

    def test_classify_without_overlap_is_unknown(self, compiled):
        assert MockOracle().classify(compiled.candidate_descriptions(), "zzz qqq") == "unknown"

    def test_session_without_signal_tool(self):
        result = MockOracle().run_open_ended_session("prompt", [])
        assert result.tool_calls == 0
        assert result.touched_ids == {}
