"""
Tests for the per-run execution context.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from missionagent.execution.context import AgentLogger, TTLCache


class TestTTLCache:
    """Tests for TTLCache."""

    def test_set_and_get(self):
        cache = TTLCache(60)
        cache.set("page", {"title": "Wiki"})

        assert cache.get("page") == {"title": "Wiki"}
        assert "page" in cache
        assert len(cache) == 1
        assert cache.get("other", "default") == "default"

    def test_entries_expire(self):
        cache = TTLCache(10)
        with patch('missionagent.execution.context.time.monotonic', return_value=100.0):
            cache.set("short", 1, ttl_seconds=5)
            cache.set("long", 2)

        with patch('missionagent.execution.context.time.monotonic', return_value=106.0):
            assert cache.get("short") is None
            assert cache.get("long") == 2
            assert len(cache) == 1

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        cache.delete("missing")
        assert "a" not in cache

        cache.clear()
        assert len(cache) == 0

    def test_falsy_values_are_cached(self):
        cache = TTLCache()
        cache.set("empty", [])

        assert "empty" in cache


class TestAgentLogger:
    """Tests for AgentLogger."""

    def test_log_is_stored_with_bound_ids(self, store, mission, make_plan):
        plan = make_plan([])
        agent_logger = AgentLogger(store, mission_id=mission.id).bind(plan_id=plan.id)

        agent_logger.warn("slow page", {"seconds": 12})

        entry = store.list_logs(mission.id)[-1]
        assert (entry.level, entry.message, entry.data) == ("warn", "slow page", {"seconds": 12})
        assert (entry.plan_id, entry.task_id) == (plan.id, None)

    def test_bind_keeps_unchanged_ids(self):
        bound = AgentLogger(None, mission_id="m1", plan_id="p1").bind(task_id="t1")

        assert (bound.mission_id, bound.plan_id, bound.task_id) == ("m1", "p1", "t1")

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError):
            AgentLogger(None).log("fatal", "nope")

    def test_goes_to_standard_logging(self, caplog):
        with caplog.at_level(logging.INFO, logger="missionagent.agent"):
            AgentLogger(None).info("started")

        assert "[Agent:INFO] started" in caplog.text

    def test_storage_failure_is_not_raised(self, caplog):
        failing = MagicMock()
        failing.add_log.side_effect = RuntimeError("database is locked")

        with caplog.at_level(logging.WARNING):
            AgentLogger(failing, mission_id="m1").error("task failed")

        assert "Failed to persist log entry: database is locked" in caplog.text


class TestExecutionContext:
    def test_for_plan_and_task_rebind_logger(self, ctx, make_plan):
        plan = make_plan([])

        task_ctx = ctx.for_plan(plan.id).for_task("t1")

        assert (task_ctx.plan_id, task_ctx.task_id) == (plan.id, "t1")
        assert task_ctx.logger.plan_id == plan.id
        assert task_ctx.logger.task_id == "t1"
        assert task_ctx.cache is ctx.cache
        assert ctx.task_id is None

    def test_for_plan_clears_task(self, ctx):
        plan_ctx = ctx.for_task("t1").for_plan("p2")

        assert plan_ctx.task_id is None
        assert plan_ctx.logger.task_id is None
