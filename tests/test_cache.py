"""Tests for per-node caching."""

import asyncio
from datetime import timedelta
from typing import List

import pytest

from trellis import CachePolicy, CheckpointConfig, Resume, StateGraph, interrupt
from trellis.core.cache import NodeCache

from conftest import TraceState


class FakeClock:
    """Manually advanced clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def cached_graph(calls: List[str], ttl=60.0, checkpointer=None):
    async def expensive(state: TraceState) -> TraceState:
        calls.append("expensive")
        return TraceState(trace=[f"computed:{len(state.trace)}"], count=1)

    return (
        StateGraph(TraceState)
        .add_node_with_cache("expensive", expensive, CachePolicy(ttl=ttl))
        .set_entry_point("expensive")
        .compile(checkpointer=checkpointer)
    )


class TestNodeCaching:
    """Tests for cache hits, misses and expiry through the executor."""

    @pytest.mark.asyncio
    async def test_same_input_hits_cache(self):
        calls: List[str] = []
        compiled = cached_graph(calls)

        first = await compiled.invoke(TraceState(trace=["q"]))
        second = await compiled.invoke(TraceState(trace=["q"]))

        assert calls == ["expensive"]
        assert first.state == second.state
        assert compiled.cache.hits == 1

    @pytest.mark.asyncio
    async def test_different_input_misses(self):
        calls: List[str] = []
        compiled = cached_graph(calls)

        await compiled.invoke(TraceState(trace=["q"]))
        await compiled.invoke(TraceState(trace=["q", "other"]))

        assert calls == ["expensive", "expensive"]

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self):
        calls: List[str] = []
        compiled = cached_graph(calls, ttl=timedelta(seconds=30))
        clock = FakeClock()
        compiled.cache.clock = clock

        await compiled.invoke(TraceState())
        clock.advance(29)
        await compiled.invoke(TraceState())
        clock.advance(2)
        await compiled.invoke(TraceState())

        assert calls == ["expensive", "expensive"]

    @pytest.mark.asyncio
    async def test_cache_is_per_compiled_graph(self):
        calls: List[str] = []
        compiled = cached_graph(calls)

        await compiled.invoke(TraceState())
        await compiled.with_checkpointer(None).invoke(TraceState())

        assert calls == ["expensive", "expensive"]

    @pytest.mark.asyncio
    async def test_uncached_nodes_always_run(self):
        calls: List[str] = []

        async def plain(state):
            calls.append("plain")

        compiled = StateGraph(TraceState).add_node("plain", plain).set_entry_point("plain").compile()

        await compiled.invoke(TraceState())
        await compiled.invoke(TraceState())

        assert calls == ["plain", "plain"]

    @pytest.mark.asyncio
    async def test_interrupt_output_not_cached(self, saver):
        calls: List[str] = []

        async def gate(state, context):
            calls.append("gate")
            if not context.resumed:
                return interrupt("confirm")
            return TraceState(trace=["approved"])

        compiled = (
            StateGraph(TraceState)
            .add_node_with_cache("gate", gate, CachePolicy(ttl=60))
            .set_entry_point("gate")
            .compile(checkpointer=saver)
        )

        await compiled.invoke(TraceState(), CheckpointConfig("a"))
        result = await compiled.invoke(Resume(), CheckpointConfig("a"))
        await compiled.invoke(TraceState(), CheckpointConfig("b"))

        assert result.state.trace == ["approved"]
        assert calls == ["gate", "gate", "gate"]
        assert len(compiled.cache) == 0


class TestNodeCacheUnit:
    """Tests for NodeCache directly."""

    @pytest.mark.asyncio
    async def test_lookup_distinguishes_cached_none(self):
        cache = NodeCache(clock=FakeClock())
        await cache.put(("n", "k"), None, CachePolicy(ttl=5))

        assert await cache.lookup(("n", "k")) == (True, None)
        assert await cache.lookup(("n", "other")) == (False, None)

    @pytest.mark.asyncio
    async def test_put_keeps_live_entry(self):
        cache = NodeCache(clock=FakeClock())
        await cache.put(("n", "k"), "first", CachePolicy(ttl=5))
        await cache.put(("n", "k"), "second", CachePolicy(ttl=5))

        assert await cache.lookup(("n", "k")) == (True, "first")

    @pytest.mark.asyncio
    async def test_expired_entries_evicted(self):
        clock = FakeClock()
        cache = NodeCache(clock=clock)
        await cache.put(("n", "k"), "value", CachePolicy(ttl=5))
        clock.advance(5)

        assert await cache.lookup(("n", "k")) == (False, None)
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_put_drops_expired_entries_for_other_keys(self):
        clock = FakeClock()
        cache = NodeCache(clock=clock)
        await cache.put(("n", "k1"), "old", CachePolicy(ttl=5))
        clock.advance(10)

        await cache.put(("n", "k2"), "new", CachePolicy(ttl=5))

        assert len(cache) == 1
        assert await cache.lookup(("n", "k2")) == (True, "new")

    def test_usable_across_event_loops(self):
        cache = NodeCache(clock=FakeClock())

        asyncio.run(cache.put(("n", "k"), "value", CachePolicy(ttl=5)))

        assert asyncio.run(cache.lookup(("n", "k"))) == (True, "value")
