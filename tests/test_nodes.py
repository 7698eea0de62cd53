"""Tests for node wrappers, retries and deferred nodes."""

import logging

import pytest

from trellis import END, BaseNode, FunctionNode, NodeContext, StateGraph
from trellis.nodes.base import as_node

from conftest import TraceState, tracer


class FlakyNode(BaseNode):
    """Fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, config=None):
        super().__init__(config)
        self.failures = failures
        self.attempts = 0

    async def _process_impl(self, state, context):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("transient")
        return TraceState(trace=["flaky"])


class TestFunctionNode:
    """Tests for callable wrapping."""

    @pytest.mark.asyncio
    async def test_state_only_callable(self):
        node = FunctionNode(lambda state: TraceState(trace=["sync"]))

        result = await node.process(TraceState(), NodeContext(node_id="n"))

        assert result.trace == ["sync"]
        assert not node.wants_context

    @pytest.mark.asyncio
    async def test_context_by_keyword_name(self):
        async def fn(state, context=None):
            return context.node_id

        node = FunctionNode(fn)

        assert node.wants_context is True
        assert await node.process(TraceState(), NodeContext(node_id="named")) == "named"

    @pytest.mark.asyncio
    async def test_context_by_second_positional(self):
        async def fn(state, ctx):
            return ctx.step

        node = FunctionNode(fn)

        assert await node.process(TraceState(), NodeContext(node_id="n", step=4)) == 4

    @pytest.mark.asyncio
    async def test_sync_callable_returning_awaitable(self):
        async def inner():
            return "awaited"

        node = FunctionNode(lambda state: inner())

        assert await node.process(TraceState(), NodeContext(node_id="n")) == "awaited"

    def test_as_node_passthrough(self):
        node = FlakyNode(0)

        assert as_node(node) is node
        assert isinstance(as_node(tracer("x")), FunctionNode)
        with pytest.raises(TypeError):
            as_node("not a node")

    @pytest.mark.asyncio
    async def test_emit_collects_custom_events(self):
        context = NodeContext(node_id="n")

        await context.emit("token")

        assert context.custom_events == ["token"]


class TestRetries:
    """Tests for BaseNode retry configuration."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        node = FlakyNode(2, config={"retry": {"max_retries": 2, "delay": 0, "backoff": 1}})

        result = await node.process(TraceState(), NodeContext(node_id="flaky"))

        assert result.trace == ["flaky"]
        assert node.attempts == 3

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self):
        node = FlakyNode(1)

        with pytest.raises(ConnectionError):
            await node.process(TraceState(), NodeContext(node_id="flaky"))

        assert node.attempts == 1


class TestDeferredNodes:
    """Tests for deferred fan-in nodes."""

    @pytest.mark.asyncio
    async def test_deferred_node_runs_like_normal_node(self, caplog):
        compiled = (
            StateGraph(TraceState)
            .add_node("left", tracer("left"))
            .add_node("right", tracer("right"))
            .add_deferred_node("join", tracer("join"))
            .add_edge("left", "join")
            .add_edge("right", "join")
            .add_edge("join", END)
            .set_entry_point("left")
            .compile()
        )

        with caplog.at_level(logging.DEBUG, logger="trellis"):
            result = await compiled.invoke(TraceState())

        assert result.state.trace == ["left", "join"]
        assert compiled.incoming_edge_count("join") == 2
        assert any("Deferred node 'join'" in record.getMessage() for record in caplog.records)
