"""Tests for single-flight refresh coordination."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from flavormind.auth.coordinator import (
    AsyncRefreshCoordinator,
    RefreshCoordinator,
    RefreshOutcome,
    RefreshState,
)
from flavormind.auth.credential_store import FileCredentialStore, MemoryCredentialStore
from flavormind.auth.refresher import TokenRefresher
from flavormind.models import Credential


def _pair(access: str, refresh: str) -> Credential:
    return Credential(access_token=access, refresh_token=refresh)


@pytest.fixture
def async_coordinator(
    store: MemoryCredentialStore, async_refresher: TokenRefresher
) -> AsyncRefreshCoordinator:
    return AsyncRefreshCoordinator(store, async_refresher)


@pytest.fixture
def coordinator(store: MemoryCredentialStore, refresher: TokenRefresher) -> RefreshCoordinator:
    return RefreshCoordinator(store, refresher)


class TestRefreshOutcome:
    def test_gave_up(self) -> None:
        assert not RefreshOutcome.RETRIED.gave_up
        assert RefreshOutcome.DENIED.gave_up
        assert RefreshOutcome.UNREACHABLE.gave_up


# ---------------------------------------------------------------------------
# Asyncio coordinator
# ---------------------------------------------------------------------------


class TestAsyncSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_failures_share_one_refresh(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        outcomes = await asyncio.gather(
            *(async_coordinator.on_auth_failure("A1") for _ in range(5))
        )

        assert outcomes == [RefreshOutcome.RETRIED] * 5
        assert async_coordinator.refresh_count == 1
        assert idp.refresh_tokens_used == ["R1"]
        assert store.load() == _pair("A2", "R2")
        assert async_coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_state_while_refreshing(
        self, async_coordinator: AsyncRefreshCoordinator
    ) -> None:
        tasks = [asyncio.create_task(async_coordinator.on_auth_failure("A1")) for _ in range(3)]
        await asyncio.sleep(0)

        assert async_coordinator.state is RefreshState.REFRESHING
        assert async_coordinator.waiting == 3

        await asyncio.gather(*tasks)
        assert async_coordinator.state is RefreshState.IDLE
        assert async_coordinator.waiting == 0

    @pytest.mark.asyncio
    async def test_waiters_released_in_arrival_order(
        self, async_coordinator: AsyncRefreshCoordinator
    ) -> None:
        released: list[int] = []

        async def _caller(n: int) -> None:
            await async_coordinator.on_auth_failure("A1")
            released.append(n)

        await asyncio.gather(*(_caller(n) for n in range(6)))
        assert released == list(range(6))

    @pytest.mark.asyncio
    async def test_late_arrival_joins_running_refresh(
        self, async_coordinator: AsyncRefreshCoordinator, idp
    ) -> None:
        first = asyncio.create_task(async_coordinator.on_auth_failure("A1"))
        await asyncio.sleep(idp.delay / 2)
        second = asyncio.create_task(async_coordinator.on_auth_failure("A1"))

        assert await first is RefreshOutcome.RETRIED
        assert await second is RefreshOutcome.RETRIED
        assert async_coordinator.refresh_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_refresh(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore
    ) -> None:
        tasks = [asyncio.create_task(async_coordinator.on_auth_failure("A1")) for _ in range(3)]
        await asyncio.sleep(0)

        tasks[0].cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert isinstance(results[0], asyncio.CancelledError)
        assert results[1:] == [RefreshOutcome.RETRIED, RefreshOutcome.RETRIED]
        assert store.load() == _pair("A2", "R2")
        assert async_coordinator.refresh_count == 1


class TestAsyncGiveUp:
    @pytest.mark.asyncio
    async def test_denied_clears_store(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.status = 400

        outcomes = await asyncio.gather(
            *(async_coordinator.on_auth_failure("A1") for _ in range(3))
        )

        assert outcomes == [RefreshOutcome.DENIED] * 3
        assert store.load() is None
        assert async_coordinator.refresh_count == 1
        assert async_coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_unreachable_keeps_store(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.status = 503

        outcomes = await asyncio.gather(
            *(async_coordinator.on_auth_failure("A1") for _ in range(3))
        )

        assert outcomes == [RefreshOutcome.UNREACHABLE] * 3
        assert store.load() == _pair("A1", "R1")
        assert async_coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_failure_is_not_latched(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.status = 503
        assert await async_coordinator.on_auth_failure("A1") is RefreshOutcome.UNREACHABLE

        idp.status = 200
        assert await async_coordinator.on_auth_failure("A1") is RefreshOutcome.RETRIED
        assert async_coordinator.refresh_count == 2
        assert store.load() is not None

    @pytest.mark.asyncio
    async def test_unexpected_error_reaches_every_waiter(
        self, async_coordinator: AsyncRefreshCoordinator, idp
    ) -> None:
        def _explode() -> None:
            raise RuntimeError("bug in refresher")

        idp.before_reply = _explode

        results = await asyncio.gather(
            *(async_coordinator.on_auth_failure("A1") for _ in range(2)),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert async_coordinator.state is RefreshState.IDLE


class TestAsyncShortcuts:
    @pytest.mark.asyncio
    async def test_stale_token_retries_without_refresh(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        store.save(_pair("A2", "R2"))

        outcome = await async_coordinator.on_auth_failure("A1")

        assert outcome is RefreshOutcome.RETRIED
        assert async_coordinator.refresh_count == 0
        assert idp.calls == []

    @pytest.mark.asyncio
    async def test_empty_store_is_denied(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        store.delete()

        assert await async_coordinator.on_auth_failure("A1") is RefreshOutcome.DENIED
        assert idp.calls == []

    @pytest.mark.asyncio
    async def test_without_sent_token_always_refreshes(
        self, async_coordinator: AsyncRefreshCoordinator, idp
    ) -> None:
        assert await async_coordinator.on_auth_failure() is RefreshOutcome.RETRIED
        assert idp.refresh_tokens_used == ["R1"]

    @pytest.mark.asyncio
    async def test_sequential_expiries_use_rotated_token(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        await async_coordinator.on_auth_failure("A1")
        await async_coordinator.on_auth_failure("A2")

        assert idp.refresh_tokens_used == ["R1", "R2"]
        assert store.load() == _pair("A3", "R3")


class _SlowReadStore(MemoryCredentialStore):
    """Reads the pair, then yields to the loop before handing it back."""

    def __init__(self, credential: Credential, delays: list[float]) -> None:
        super().__init__(credential)
        self.delays = delays
        self.reads = 0

    async def get(self) -> Credential | None:
        credential = self.load()
        delay = self.delays[self.reads] if self.reads < len(self.delays) else 0
        self.reads += 1
        await asyncio.sleep(delay)
        return credential


class TestAsyncSuspendingStore:
    @pytest.mark.asyncio
    async def test_slow_read_does_not_start_second_refresh(
        self, async_refresher: TokenRefresher, idp
    ) -> None:
        slow_store = _SlowReadStore(_pair("A1", "R1"), delays=[0, 0.05])
        coordinator = AsyncRefreshCoordinator(slow_store, async_refresher)

        outcomes = await asyncio.gather(
            coordinator.on_auth_failure("A1"), coordinator.on_auth_failure("A1")
        )

        assert outcomes == [RefreshOutcome.RETRIED] * 2
        assert coordinator.refresh_count == 1
        assert idp.refresh_tokens_used == ["R1"]
        assert slow_store.load() == _pair("A2", "R2")

    @pytest.mark.asyncio
    async def test_staggered_failures_over_file_store(
        self, async_refresher: TokenRefresher, tmp_path, idp
    ) -> None:
        file_store = FileCredentialStore(tmp_path / "credentials.json")
        file_store.save(_pair("A1", "R1"))
        coordinator = AsyncRefreshCoordinator(file_store, async_refresher)

        async def _caller(n: int) -> RefreshOutcome:
            await asyncio.sleep(n * idp.delay / 2)
            return await coordinator.on_auth_failure("A1")

        outcomes = await asyncio.gather(*(_caller(n) for n in range(10)))

        assert outcomes == [RefreshOutcome.RETRIED] * 10
        assert coordinator.refresh_count == 1
        assert idp.refresh_tokens_used == ["R1"]
        assert file_store.load() == _pair("A2", "R2")

    @pytest.mark.asyncio
    async def test_current_token_in_queue_forces_refresh(
        self, async_coordinator: AsyncRefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        store.save(_pair("A2", "R2"))

        outcomes = await asyncio.gather(
            async_coordinator.on_auth_failure("A1"), async_coordinator.on_auth_failure("A2")
        )

        assert outcomes == [RefreshOutcome.RETRIED] * 2
        assert idp.refresh_tokens_used == ["R2"]
        assert async_coordinator.refresh_count == 1


class TestAsyncFailedState:
    @pytest.mark.asyncio
    async def test_failed_visible_until_waiters_have_run(
        self, async_coordinator: AsyncRefreshCoordinator, idp
    ) -> None:
        idp.status = 503

        assert await async_coordinator.on_auth_failure("A1") is RefreshOutcome.UNREACHABLE
        assert async_coordinator.state is RefreshState.FAILED

        await asyncio.sleep(0)
        assert async_coordinator.state is RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_refresh_started_while_failed_stays_running(
        self, async_coordinator: AsyncRefreshCoordinator, idp
    ) -> None:
        states: list[RefreshState] = []
        idp.before_reply = lambda: states.append(async_coordinator.state)
        idp.status = 503
        await async_coordinator.on_auth_failure("A1")

        idp.status = 200
        assert await async_coordinator.on_auth_failure("A1") is RefreshOutcome.RETRIED
        assert states == [RefreshState.REFRESHING, RefreshState.REFRESHING]
        assert async_coordinator.refresh_count == 2


# ---------------------------------------------------------------------------
# Threaded coordinator
# ---------------------------------------------------------------------------


def _run_threads(coordinator: RefreshCoordinator, count: int, sent_token: str = "A1") -> list:
    results: list = [None] * count
    barrier = threading.Barrier(count)

    def _worker(i: int) -> None:
        barrier.wait()
        try:
            results[i] = coordinator.on_auth_failure(sent_token)
        except Exception as exc:  # collected for assertions
            results[i] = exc

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


class TestThreadedSingleFlight:
    def test_concurrent_threads_share_one_refresh(
        self, coordinator: RefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.before_reply = lambda: time.sleep(0.05)

        results = _run_threads(coordinator, 8)

        assert results == [RefreshOutcome.RETRIED] * 8
        assert coordinator.refresh_count == 1
        assert idp.refresh_tokens_used == ["R1"]
        assert store.load() == _pair("A2", "R2")
        assert coordinator.state is RefreshState.IDLE

    def test_denied_clears_store(
        self, coordinator: RefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.status = 401
        idp.before_reply = lambda: time.sleep(0.05)

        results = _run_threads(coordinator, 4)

        assert results == [RefreshOutcome.DENIED] * 4
        assert store.load() is None
        assert coordinator.refresh_count == 1

    def test_unreachable_keeps_store(
        self, coordinator: RefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        idp.status = 502

        assert coordinator.on_auth_failure("A1") is RefreshOutcome.UNREACHABLE
        assert store.load() == _pair("A1", "R1")
        assert coordinator.state is RefreshState.IDLE

    def test_stale_token_retries_without_refresh(
        self, coordinator: RefreshCoordinator, store: MemoryCredentialStore, idp
    ) -> None:
        store.save(_pair("A2", "R2"))

        assert coordinator.on_auth_failure("A1") is RefreshOutcome.RETRIED
        assert idp.calls == []

    def test_unexpected_error_propagates(self, coordinator: RefreshCoordinator, idp) -> None:
        def _explode() -> None:
            raise RuntimeError("bug in refresher")

        idp.before_reply = _explode

        with pytest.raises(RuntimeError):
            coordinator.on_auth_failure("A1")
        assert coordinator.state is RefreshState.IDLE
        assert coordinator.waiting == 0
