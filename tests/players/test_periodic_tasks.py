"""Tests for periodic background tasks and the poll and watchdog tasks."""

import asyncio

import pytest

from presence.errors import AuthorityTimeout
from presence.players.periodic import PeriodicTask
from presence.players.tasks import PollTask, WatchdogTask
from presence.rcon import OnlinePlayer, OnlinePlayers

from ..fixtures.presence_env import ALICE_UUID, BOB_UUID, create_tracker_env


class FakeAuthority:
    """Stands in for the RCON client; answers from a script of results."""

    def __init__(self, *results):
        self.results = list(results)
        self.polls = 0

    async def poll(self) -> OnlinePlayers:
        self.polls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def online(*players: tuple[str, str]) -> OnlinePlayers:
    return OnlinePlayers(
        online=len(players),
        max=20,
        players=[OnlinePlayer(name=name, uuid=uuid) for name, uuid in players],
    )


class TestPeriodicTask:
    """Scheduling and shutdown of a periodic task."""

    @pytest.mark.asyncio
    async def test_ticks_repeatedly(self):
        ticked = asyncio.Event()
        calls = []

        async def tick():
            calls.append(1)
            if len(calls) >= 3:
                ticked.set()

        task = PeriodicTask("test task", tick, lambda: 0.01)
        await task.start()
        try:
            await asyncio.wait_for(ticked.wait(), timeout=2)
        finally:
            await task.stop()

        assert len(calls) >= 3
        assert not task.running

    @pytest.mark.asyncio
    async def test_survives_tick_failures(self, caplog):
        ticked = asyncio.Event()
        calls = []

        async def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("tick exploded")
            ticked.set()

        task = PeriodicTask("flaky task", tick, lambda: 0.01)
        await task.start()
        try:
            await asyncio.wait_for(ticked.wait(), timeout=2)
        finally:
            await task.stop()

        assert len(calls) >= 2
        assert "Error in flaky task tick: tick exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self):
        started = asyncio.Event()
        finished = []

        async def tick():
            started.set()
            await asyncio.sleep(0.1)
            finished.append(1)

        task = PeriodicTask("slow task", tick, lambda: 60)
        await task.start()
        await asyncio.wait_for(started.wait(), timeout=2)
        await task.stop()

        assert finished == [1]

    @pytest.mark.asyncio
    async def test_stop_cancels_after_timeout(self, caplog):
        started = asyncio.Event()
        finished = []

        async def tick():
            started.set()
            await asyncio.sleep(60)
            finished.append(1)

        task = PeriodicTask("stuck task", tick, lambda: 60, stop_timeout=0.05)
        await task.start()
        await asyncio.wait_for(started.wait(), timeout=2)
        await task.stop()

        assert finished == []
        assert "cancelling" in caplog.text

    @pytest.mark.asyncio
    async def test_interval_is_reread_every_tick(self):
        intervals_read = []

        def interval() -> float:
            value = 0.01 if len(intervals_read) < 2 else 60.0
            intervals_read.append(value)
            return value

        async def tick():
            pass

        task = PeriodicTask("interval task", tick, interval)
        await task.start()
        for _ in range(100):
            if len(intervals_read) >= 3:
                break
            await asyncio.sleep(0.01)
        await task.stop()

        assert intervals_read[:3] == [0.01, 0.01, 60.0]
        assert task.tick_count == 3


class TestPollTask:
    """One poll tick feeding the tracker and the governor."""

    @pytest.mark.asyncio
    async def test_successful_poll_reconciles(self):
        env = await create_tracker_env()
        try:
            await env.tracker.on_join("Alice")
            env.clock.set(60)
            authority = FakeAuthority(online(("Alice", ALICE_UUID)))
            task = PollTask(authority, env.tracker, env.governor, lambda: env.config["watchdog"])

            await task.poll_once()

            alice = await env.tracker.get_player(ALICE_UUID)
            assert alice.last_seen_at == env.clock()
            assert env.governor.last_known_online_count == 1
        finally:
            await env.cleanup()

    @pytest.mark.asyncio
    async def test_failed_poll_counts_failure(self):
        env = await create_tracker_env()
        try:
            authority = FakeAuthority(AuthorityTimeout("no answer"))
            task = PollTask(authority, env.tracker, env.governor, lambda: env.config["watchdog"])

            await task.poll_once()

            assert env.governor.consecutive_failures == 1
        finally:
            await env.cleanup()

    @pytest.mark.asyncio
    async def test_first_success_after_outage_does_not_advance(self):
        env = await create_tracker_env(max_consecutive_failures=1)
        try:
            await env.tracker.on_join("Bob")
            joined_at = env.clock()
            authority = FakeAuthority(
                AuthorityTimeout("no answer"),
                online(("Bob", BOB_UUID)),
                online(("Bob", BOB_UUID)),
            )
            task = PollTask(authority, env.tracker, env.governor, lambda: env.config["watchdog"])

            await task.poll_once()
            env.clock.set(60)
            await task.poll_once()

            assert env.governor.authority_reliable
            assert (await env.tracker.get_player(BOB_UUID)).last_seen_at == joined_at

            env.clock.set(120)
            await task.poll_once()
            assert (await env.tracker.get_player(BOB_UUID)).last_seen_at == env.clock()
        finally:
            await env.cleanup()

    @pytest.mark.asyncio
    async def test_interval_follows_config(self):
        env = await create_tracker_env(poll_interval_ms=5_000)
        try:
            task = PollTask(FakeAuthority(), env.tracker, env.governor, lambda: env.config["watchdog"])
            assert task._interval_seconds() == 5.0

            env.set_config(poll_interval_ms=2_000)
            assert task._interval_seconds() == 2.0
        finally:
            await env.cleanup()


class TestWatchdogTask:
    """One watchdog tick."""

    @pytest.mark.asyncio
    async def test_check_uses_current_timeout(self):
        env = await create_tracker_env(session_timeout_ms=180_000, heartbeat_interval_ms=30_000)
        try:
            task = WatchdogTask(env.tracker, lambda: env.config["watchdog"])
            assert task._interval_seconds() == 30.0

            await env.tracker.on_join("Alice")
            env.clock.set(100)
            await task.check_once()
            assert await env.tracker.is_online(ALICE_UUID)

            env.set_config(session_timeout_ms=60_000)
            await task.check_once()
            assert not await env.tracker.is_online(ALICE_UUID)
        finally:
            await env.cleanup()
