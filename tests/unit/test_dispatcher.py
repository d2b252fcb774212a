"""Tests for the tool dispatcher."""

import asyncio
import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tinyagent.cancellation import CancellationToken
from tinyagent.core.message import ToolCallRecord, ToolCallRequest, ToolResult
from tinyagent.metrics import UNKNOWN_TOOL_LABEL
from tinyagent.tools.base import FunctionTool, ToolConfig, define_tool
from tinyagent.tools.dispatcher import (
    DispatchContext,
    dispatch,
    execute_tool,
    format_tool_result,
    index_tools,
    parse_arguments,
)
from tests.helpers import sample_value


def request(call_id: str, name: str, arguments: str = "") -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments=arguments)


class TestIndexTools:
    """Tests for tool collection normalization."""

    def test_iterable(self, add_tool, weather_tool):
        """Test tools are keyed by name."""
        assert set(index_tools([add_tool, weather_tool])) == {"add", "get_weather"}

    def test_duplicate_names(self, add_tool):
        """Test duplicate names are rejected."""
        with pytest.raises(ValueError, match="Duplicate tool name"):
            index_tools([add_tool, add_tool])


class TestParseArguments:
    """Tests for argument text parsing."""

    def test_blank_means_no_arguments(self):
        """Test empty argument text parses to an empty object."""
        assert parse_arguments("") == {}
        assert parse_arguments("   ") == {}

    def test_json(self):
        """Test JSON argument text."""
        assert parse_arguments('{"a": 1}') == {"a": 1}


class TestExecuteTool:
    """Tests for single-call dispatch."""

    @pytest.mark.asyncio
    async def test_success(self, add_tool):
        """Test a successful call produces a success record."""
        record = await execute_tool({"add": add_tool}, request("c1", "add", '{"a": 2, "b": 3}'))
        assert record.id == "c1"
        assert record.name == "add"
        assert record.arguments == {"a": 2, "b": 3}
        assert record.result.success
        assert record.result.data == 5
        assert record.result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_unknown_tool(self, add_tool):
        """Test an unknown name becomes a failure record, never an exception."""
        record = await execute_tool({"add": add_tool}, request("c1", "nope"))
        assert not record.result.success
        assert record.result.error == "Tool not found: nope"
        assert record.result.duration_ms == 0
        assert record.arguments is None

    @pytest.mark.asyncio
    async def test_disabled_tool_is_not_found(self):
        """Test a disabled tool is treated as unknown."""
        tool = FunctionTool("off", "Disabled", lambda input: 1, config=ToolConfig(enabled=False))
        record = await execute_tool({"off": tool}, request("c1", "off"))
        assert record.result.error == "Tool not found: off"

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, add_tool):
        """Test unparseable argument text fails the call."""
        record = await execute_tool({"add": add_tool}, request("c1", "add", '{"a": 1'))
        assert not record.result.success
        assert record.arguments is None

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, add_tool):
        """Test schema violations fail the call."""
        record = await execute_tool({"add": add_tool}, request("c1", "add", '{"a": "x"}'))
        assert not record.result.success
        assert record.result.error == "Invalid arguments for tool add"
        assert record.arguments == {"a": "x"}

    @pytest.mark.asyncio
    async def test_tool_exception(self, failing_tool):
        """Test a raising tool produces a failure record."""
        record = await execute_tool({"explode": failing_tool}, request("c1", "explode", "{}"))
        assert not record.result.success
        assert record.result.error == "boom"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test the per-call timeout fails a slow tool."""

        @define_tool(name="slow", description="Sleeps", timeout_ms=10)
        async def slow(input):
            await asyncio.sleep(1)

        record = await execute_tool({"slow": slow}, request("c1", "slow"))
        assert not record.result.success
        assert record.result.error == "Tool timed out after 10ms"

    @pytest.mark.asyncio
    async def test_context_reaches_tool(self):
        """Test the tool sees the call id, token and caller metadata."""
        seen = {}

        @define_tool(name="inspect_context", description="Records its context")
        def inspect_context(input, context):
            seen["execution_id"] = context.execution_id
            seen["cancellation"] = context.cancellation
            seen["metadata"] = context.metadata
            seen["thread_id"] = context.thread_id

        token = CancellationToken()
        run_context = DispatchContext(cancellation=token, thread_id="t1", metadata={"agent_name": "a"})
        await execute_tool({"inspect_context": inspect_context}, request("c9", "inspect_context"), run_context)

        assert seen == {
            "execution_id": "c9",
            "cancellation": token,
            "metadata": {"agent_name": "a"},
            "thread_id": "t1",
        }

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, add_tool):
        """Test tool call counters are updated."""
        labels = {"tool": "add", "outcome": "success"}
        before = sample_value("tinyagent_tool_calls_total", labels)
        await execute_tool({"add": add_tool}, request("c1", "add", '{"a": 1, "b": 1}'))
        assert sample_value("tinyagent_tool_calls_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_unknown_tools_share_one_label(self, add_tool):
        """Test names the model invents are counted under a single label."""
        labels = {"tool": UNKNOWN_TOOL_LABEL, "outcome": "failure"}
        before = sample_value("tinyagent_tool_calls_total", labels)

        for name in ("made_up_1", "made_up_2"):
            await execute_tool({"add": add_tool}, request("c1", name))

        assert sample_value("tinyagent_tool_calls_total", labels) == before + 2
        assert sample_value("tinyagent_tool_calls_total", {"tool": "made_up_1", "outcome": "failure"}) == 0


class TestDispatch:
    """Tests for batch dispatch."""

    @pytest.mark.asyncio
    async def test_empty_batch(self, add_tool):
        """Test no requests means no records."""
        assert await dispatch([add_tool], []) == []

    @pytest.mark.asyncio
    async def test_unknown_tool_does_not_affect_siblings(self, add_tool, weather_tool):
        """Test one unknown tool fails alone while siblings succeed."""
        records = await dispatch(
            [add_tool, weather_tool],
            [
                request("c1", "add", '{"a": 1, "b": 2}'),
                request("c2", "missing"),
                request("c3", "get_weather", '{"city": "Oslo"}'),
            ],
        )
        assert [r.id for r in records] == ["c1", "c2", "c3"]
        assert [r.result.success for r in records] == [True, False, True]
        assert records[2].result.data == {"city": "Oslo", "temp_c": 21}

    @pytest.mark.asyncio
    async def test_parallel_calls_overlap(self):
        """Test parallel dispatch runs calls concurrently."""
        running = 0
        peak = 0

        @define_tool(name="wait", description="Waits")
        async def wait(input):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await dispatch([wait], [request(f"c{i}", "wait") for i in range(3)], parallel=True)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_sequential_calls_do_not_overlap(self):
        """Test sequential dispatch runs one call at a time."""
        running = 0
        peak = 0

        @define_tool(name="wait", description="Waits")
        async def wait(input):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.001)
            running -= 1

        await dispatch([wait], [request(f"c{i}", "wait") for i in range(3)], parallel=False)
        assert peak == 1

    @given(delays=st.lists(st.integers(min_value=0, max_value=5), min_size=1, max_size=8))
    @settings(max_examples=25, deadline=None)
    def test_order_preserved_regardless_of_completion_order(self, delays):
        """Test records come back in request order for any completion order."""

        @define_tool(name="sleepy", description="Sleeps for a given number of ticks")
        async def sleepy(input):
            for _ in range(input["ticks"]):
                await asyncio.sleep(0)
            return input["ticks"]

        requests = [request(f"c{i}", "sleepy", json.dumps({"ticks": ticks})) for i, ticks in enumerate(delays)]
        records = asyncio.run(dispatch([sleepy], requests))

        assert [r.id for r in records] == [r.id for r in requests]
        assert [r.result.data for r in records] == delays


class TestFormatToolResult:
    """Tests for rendering records as tool messages."""

    def test_success_is_json(self):
        """Test success data is JSON-encoded."""
        record = ToolCallRecord(id="c1", name="x", result=ToolResult.ok({"a": "é"}))
        assert format_tool_result(record) == '{"a": "é"}'

    def test_failure_is_prefixed(self):
        """Test failures are rendered as an error line."""
        record = ToolCallRecord(id="c1", name="x", result=ToolResult.fail("boom"))
        assert format_tool_result(record) == "Error: boom"
