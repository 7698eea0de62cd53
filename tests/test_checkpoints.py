"""Tests for checkpointing: savers, state snapshots and state updates."""

import asyncio
from datetime import datetime

import pytest

from trellis import (
    END,
    Checkpoint,
    CheckpointConfig,
    CheckpointError,
    CheckpointNotFoundError,
    Complete,
    GraphConfigurationError,
    MemorySaver,
    SQLiteSaver,
    StateGraph,
)

from conftest import TraceState, tracer


@pytest.fixture
def sqlite_saver(tmp_path):
    """Create a SQLite saver in a temporary directory."""
    return SQLiteSaver(str(tmp_path / "checkpoints.db"))


def make_checkpoint(step: int, next_node=None) -> Checkpoint:
    return Checkpoint(state={"trace": [f"s{step}"], "count": step}, next_node=next_node, step=step)


def linear_graph(saver):
    return (
        StateGraph(TraceState)
        .add_node("a", tracer("a"))
        .add_node("b", tracer("b"))
        .add_edge("a", "b")
        .add_edge("b", END)
        .set_entry_point("a")
        .compile(checkpointer=saver)
    )


class TestCheckpointModel:
    """Tests for the Checkpoint model."""

    def test_defaults(self):
        checkpoint = Checkpoint(state={"trace": []}, next_node="a", step=0)

        assert len(checkpoint.checkpoint_id) == 36  # UUID format
        assert isinstance(checkpoint.created_at, datetime)
        assert checkpoint.metadata == {}
        assert not checkpoint.is_finished
        assert checkpoint.pause is None

    def test_dict_round_trip(self):
        checkpoint = Checkpoint(
            state={"trace": ["x"]}, next_node=None, step=3, metadata={"interrupt": "after"}
        )

        restored = Checkpoint.from_dict(checkpoint.to_dict())

        assert restored == checkpoint
        assert restored.is_finished
        assert restored.pause == "after"

    def test_config_positional_and_frozen(self):
        config = CheckpointConfig("thread-1")

        assert config.thread_id == "thread-1"
        assert config == CheckpointConfig(thread_id="thread-1")
        with pytest.raises(Exception):
            config.thread_id = "other"


class TestMemorySaver:
    """Tests for the in-memory checkpointer."""

    @pytest.mark.asyncio
    async def test_get_returns_latest(self, saver, config):
        await saver.put(config, make_checkpoint(1, "b"))
        await saver.put(config, make_checkpoint(2))

        latest = await saver.get(config)

        assert latest.step == 2
        assert latest.is_finished

    @pytest.mark.asyncio
    async def test_unknown_thread(self, saver):
        assert await saver.get(CheckpointConfig("nobody")) is None
        assert await saver.list(CheckpointConfig("nobody")) == []

    @pytest.mark.asyncio
    async def test_history_is_append_only_and_isolated(self, saver):
        first, second = CheckpointConfig("t1"), CheckpointConfig("t2")
        await saver.put(first, make_checkpoint(1, "a"))
        await saver.put(first, make_checkpoint(2, "b"))
        await saver.put(second, make_checkpoint(9))

        assert [cp.step for cp in await saver.list(first)] == [1, 2]
        assert [cp.step for cp in await saver.list(second)] == [9]
        assert sorted(await saver.list_threads()) == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_returns_copies(self, saver, config):
        await saver.put(config, make_checkpoint(1, "a"))

        loaded = await saver.get(config)
        loaded.state["trace"].append("tampered")

        assert (await saver.get(config)).state["trace"] == ["s1"]

    @pytest.mark.asyncio
    async def test_delete(self, saver, config):
        await saver.put(config, make_checkpoint(1))
        await saver.delete(config)

        assert await saver.get(config) is None

    def test_usable_across_event_loops(self):
        saver = MemorySaver()
        config = CheckpointConfig("t1")

        asyncio.run(saver.put(config, make_checkpoint(1)))

        assert asyncio.run(saver.get(config)).step == 1


class TestSQLiteSaver:
    """Tests for the SQLite checkpointer."""

    @pytest.mark.asyncio
    async def test_put_get_list(self, sqlite_saver, config):
        await sqlite_saver.put(config, make_checkpoint(1, "b"))
        await sqlite_saver.put(config, make_checkpoint(2))

        latest = await sqlite_saver.get(config)
        history = await sqlite_saver.list(config)

        assert latest.step == 2
        assert latest.state == {"trace": ["s2"], "count": 2}
        assert [cp.step for cp in history] == [1, 2]
        assert history[0].next_node == "b"

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, config):
        db_path = str(tmp_path / "shared.db")
        await SQLiteSaver(db_path).put(config, make_checkpoint(4, "a"))

        reopened = await SQLiteSaver(db_path).get(config)

        assert reopened.step == 4
        assert reopened.next_node == "a"

    @pytest.mark.asyncio
    async def test_delete_and_threads(self, sqlite_saver):
        await sqlite_saver.put(CheckpointConfig("t1"), make_checkpoint(1))
        await sqlite_saver.put(CheckpointConfig("t2"), make_checkpoint(1))
        await sqlite_saver.delete(CheckpointConfig("t1"))

        assert await sqlite_saver.get(CheckpointConfig("t1")) is None
        assert await sqlite_saver.list_threads() == ["t2"]

    @pytest.mark.asyncio
    async def test_graph_run_with_sqlite(self, sqlite_saver, config):
        compiled = linear_graph(sqlite_saver)

        result = await compiled.invoke(TraceState(), config)
        snapshot = await compiled.get_state(config)

        assert result.state.trace == ["a", "b"]
        assert snapshot.state == result.state
        assert snapshot.next_node is None


class TestStateInspection:
    """Tests for get_state, get_state_history and update_state."""

    @pytest.mark.asyncio
    async def test_one_checkpoint_per_step(self, saver, config):
        compiled = linear_graph(saver)

        await compiled.invoke(TraceState(), config)
        history = await compiled.get_state_history(config)

        assert [snapshot.next_node for snapshot in history] == ["b", None]
        assert [snapshot.state.trace for snapshot in history] == [["a"], ["a", "b"]]

    @pytest.mark.asyncio
    async def test_get_state_unknown_thread(self, saver):
        compiled = linear_graph(saver)

        assert await compiled.get_state(CheckpointConfig("missing")) is None

    @pytest.mark.asyncio
    async def test_state_apis_require_checkpointer(self, config):
        compiled = linear_graph(None)

        with pytest.raises(GraphConfigurationError):
            await compiled.get_state(config)
        with pytest.raises(GraphConfigurationError):
            await compiled.get_state_history(config)
        with pytest.raises(GraphConfigurationError):
            await compiled.update_state(config, TraceState())

    @pytest.mark.asyncio
    async def test_update_state_unknown_thread(self, saver):
        compiled = linear_graph(saver)

        with pytest.raises(CheckpointNotFoundError):
            await compiled.update_state(CheckpointConfig("missing"), TraceState())

    @pytest.mark.asyncio
    async def test_update_state_appends_checkpoint(self, saver, config):
        compiled = linear_graph(saver)
        await compiled.invoke(TraceState(), config)

        snapshot = await compiled.update_state(config, {"trace": ["edited"], "count": 3})

        assert snapshot.state.trace == ["a", "b", "edited"]
        assert snapshot.state.count == 3
        assert snapshot.metadata["source"] == "update"
        assert len(await compiled.get_state_history(config)) == 3

    @pytest.mark.asyncio
    async def test_finished_thread_with_new_input_starts_new_pass(self, saver, config):
        compiled = linear_graph(saver)
        await compiled.invoke(TraceState(trace=["first"]), config)

        result = await compiled.invoke(TraceState(trace=["second"]), config)

        assert result.state.trace == ["first", "a", "b", "second", "a", "b"]

    @pytest.mark.asyncio
    async def test_finished_thread_without_input_returns_saved_state(self, saver, config):
        compiled = linear_graph(saver)
        await compiled.invoke(TraceState(), config)

        result = await compiled.invoke(None, config)

        assert isinstance(result, Complete)
        assert result.state.trace == ["a", "b"]

    @pytest.mark.asyncio
    async def test_resume_unknown_thread(self, saver):
        compiled = linear_graph(saver)

        with pytest.raises(CheckpointNotFoundError):
            await compiled.invoke(None, CheckpointConfig("missing"))


class FailingSaver(MemorySaver):
    async def put(self, config, checkpoint):
        raise OSError("disk full")


class TestCheckpointFailures:
    """Tests for checkpointer failure wrapping."""

    @pytest.mark.asyncio
    async def test_put_failure_wrapped(self, config):
        compiled = linear_graph(FailingSaver())

        with pytest.raises(CheckpointError, match="disk full"):
            await compiled.invoke(TraceState(), config)

    @pytest.mark.asyncio
    async def test_no_config_means_no_checkpoints(self, saver):
        compiled = linear_graph(saver)

        await compiled.invoke(TraceState())

        assert await saver.list_threads() == []
