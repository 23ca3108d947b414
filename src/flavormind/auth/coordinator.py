"""Single-flight refresh coordination.

When an access token expires, every request in flight gets a 401 at roughly
the same time.  Refreshing once per failed request would hit the identity
provider N times, and providers that rotate refresh tokens would invalidate
all but the first of those calls.  The coordinator collapses the N failures
into one refresh and hands the single result back to all N callers.

Each coordinator owns a small state machine (:class:`RefreshState`)::

    IDLE --first 401--> REFRESHING --success--> IDLE
                            |
                            +--denied/unreachable--> FAILED --> IDLE

While ``REFRESHING``, later callers are queued as waiters instead of
starting their own refresh.  When the refresh finishes, the store is updated
first and then every waiter is released, oldest first, with the same
:class:`RefreshOutcome`.  ``FAILED`` is never latched: the next 401 after a
re-login may refresh again.

Two implementations share that contract:

- :class:`AsyncRefreshCoordinator` for :class:`~flavormind.client.AsyncClient`.
  The refresh runs in its own task, so cancelling one waiting request never
  cancels the refresh everybody else is waiting on.  There is no ``await``
  between "is a refresh running?" and "mark it running"; the store is read
  inside the refresh task.
- :class:`RefreshCoordinator` for :class:`~flavormind.client.SyncClient`,
  shared across threads.  The check-then-transition step is guarded by a
  :class:`threading.Lock`; waiters block on a :class:`threading.Event`.

The coordinator does not know what requests look like.  It only answers
"retry" or "give up"; replaying the request is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Optional

from flavormind.auth.credential_store import CredentialStore
from flavormind.auth.refresher import TokenRefresher
from flavormind.exceptions import RefreshDenied, RefreshUnreachable
from flavormind.models import Credential

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    """Lifecycle of the shared refresh."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"


class RefreshOutcome(str, Enum):
    """What a waiting request should do next.

    ``DENIED`` and ``UNREACHABLE`` both mean "give up"; they are kept apart so
    the client can surface an expired session differently from a network
    problem.
    """

    RETRIED = "retried"
    DENIED = "denied"
    UNREACHABLE = "unreachable"

    @property
    def gave_up(self) -> bool:
        return self is not RefreshOutcome.RETRIED


def _check_stored(
    current: Optional[Credential], sent_tokens: list[Optional[str]]
) -> Optional[RefreshOutcome]:
    """Return an outcome that needs no refresh, or ``None`` if one is needed.

    Requests that were all sent with an older access token than the one now
    stored lost a race with a refresh that already finished; they only need
    a retry.  A caller that sent no token (a forced refresh) or the current
    token still needs a real refresh.
    """
    if current is None:
        return RefreshOutcome.DENIED
    if sent_tokens and all(
        sent is not None and sent != current.access_token for sent in sent_tokens
    ):
        return RefreshOutcome.RETRIED
    return None


class AsyncRefreshCoordinator:
    """Single-flight refresh for asyncio callers.

    Args:
        store: Where the credential lives.  Updated on success, cleared on
            denial, untouched when the provider is unreachable.
        refresher: Performs the actual refresh call.

    Example::

        outcome = await coordinator.on_auth_failure(sent_token="A1")
        if outcome is RefreshOutcome.RETRIED:
            response = await resend()
    """

    def __init__(self, store: CredentialStore, refresher: TokenRefresher) -> None:
        self._store = store
        self._refresher = refresher
        self._state = RefreshState.IDLE
        self._waiters: list[tuple[asyncio.Future[RefreshOutcome], Optional[str]]] = []
        self._task: Optional[asyncio.Task[None]] = None
        self._refresh_count = 0

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def refresh_count(self) -> int:
        """How many times the refresher has been invoked."""
        return self._refresh_count

    @property
    def waiting(self) -> int:
        """Number of callers queued on the in-flight refresh."""
        return len(self._waiters)

    async def on_auth_failure(self, sent_token: Optional[str] = None) -> RefreshOutcome:
        """Report a 401 and wait for the shared refresh to settle.

        The first caller marks the refresh as running and starts it in a
        task before anything is awaited; everyone else just queues.  The
        store is read inside that task, so a caller whose token was already
        replaced gets ``RETRIED`` without a second refresh.

        Args:
            sent_token: The access token the failed request carried.  Lets
                late 401s for an already-replaced token skip the refresh.

        Returns:
            The outcome every caller of this refresh receives.
        """
        if self._state is not RefreshState.REFRESHING:
            self._state = RefreshState.REFRESHING
            self._task = asyncio.create_task(self._run_refresh())

        waiter: asyncio.Future[RefreshOutcome] = asyncio.get_running_loop().create_future()
        self._waiters.append((waiter, sent_token))
        logger.debug("Waiting on token refresh (%d queued)", len(self._waiters))
        return await waiter

    async def _run_refresh(self) -> None:
        outcome: Optional[RefreshOutcome] = None
        error: Optional[BaseException] = None
        try:
            current = await self._store.get()
            outcome = _check_stored(current, [sent for _, sent in self._waiters])
            if outcome is not None:
                logger.debug("Token refresh skipped: %s", outcome.value)
            else:
                assert current is not None
                self._refresh_count += 1
                credential = await self._refresher.refresh_async(current.refresh_token)
                await self._store.set(credential)
                outcome = RefreshOutcome.RETRIED
        except RefreshDenied as exc:
            logger.warning("Token refresh denied, clearing credentials: %s", exc)
            await self._store.clear()
            outcome = RefreshOutcome.DENIED
        except RefreshUnreachable as exc:
            logger.warning("Token refresh failed, keeping credentials: %s", exc)
            outcome = RefreshOutcome.UNREACHABLE
        except Exception as exc:
            error = exc
        finally:
            self._finish(outcome, error)

    def _finish(self, outcome: Optional[RefreshOutcome], error: Optional[BaseException]) -> None:
        """Release every waiter, oldest first.

        After a failure the state reads ``FAILED`` until the released
        waiters have run, then drops back to ``IDLE``.
        """
        failed = outcome is None or outcome.gave_up
        self._state = RefreshState.FAILED if failed else RefreshState.IDLE
        waiters, self._waiters = self._waiters, []
        self._task = None
        for waiter, _ in waiters:
            if waiter.done():
                continue  # the waiting request was cancelled
            if outcome is not None:
                waiter.set_result(outcome)
            elif error is not None:
                waiter.set_exception(error)
            else:
                waiter.cancel()
        if failed:
            asyncio.get_running_loop().call_soon(self._settle)

    def _settle(self) -> None:
        # A new 401 may already have started the next refresh.
        if self._state is RefreshState.FAILED:
            self._state = RefreshState.IDLE


class _Waiter:
    __slots__ = ("event", "outcome", "error")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.outcome: Optional[RefreshOutcome] = None
        self.error: Optional[BaseException] = None


class RefreshCoordinator:
    """Single-flight refresh for threaded callers.

    The first thread to report a 401 runs the refresh on its own stack;
    threads that arrive while it runs block until it finishes.

    Args:
        store: Where the credential lives.
        refresher: Performs the actual refresh call.
    """

    def __init__(self, store: CredentialStore, refresher: TokenRefresher) -> None:
        self._store = store
        self._refresher = refresher
        self._lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._waiters: list[_Waiter] = []
        self._refresh_count = 0

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def refresh_count(self) -> int:
        """How many times the refresher has been invoked."""
        return self._refresh_count

    @property
    def waiting(self) -> int:
        """Number of threads queued on the in-flight refresh."""
        with self._lock:
            return len(self._waiters)

    def on_auth_failure(self, sent_token: Optional[str] = None) -> RefreshOutcome:
        """Report a 401 and block until the shared refresh settles.

        Args:
            sent_token: The access token the failed request carried.

        Returns:
            The outcome every caller of this refresh receives.
        """
        waiter = _Waiter()
        refresh_token: Optional[str] = None
        with self._lock:
            if self._state is not RefreshState.REFRESHING:
                current = self._store.load()
                shortcut = _check_stored(current, [sent_token])
                if shortcut is not None:
                    return shortcut
                assert current is not None
                self._state = RefreshState.REFRESHING
                self._refresh_count += 1
                refresh_token = current.refresh_token
            self._waiters.append(waiter)

        if refresh_token is not None:
            self._run_refresh(refresh_token)
        else:
            logger.debug("Waiting on token refresh in another thread")

        waiter.event.wait()
        if waiter.error is not None:
            raise waiter.error
        assert waiter.outcome is not None
        return waiter.outcome

    def _run_refresh(self, refresh_token: str) -> None:
        outcome: Optional[RefreshOutcome] = None
        error: Optional[BaseException] = None
        try:
            credential = self._refresher.refresh(refresh_token)
            self._store.save(credential)
            outcome = RefreshOutcome.RETRIED
        except RefreshDenied as exc:
            logger.warning("Token refresh denied, clearing credentials: %s", exc)
            self._store.delete()
            outcome = RefreshOutcome.DENIED
        except RefreshUnreachable as exc:
            logger.warning("Token refresh failed, keeping credentials: %s", exc)
            outcome = RefreshOutcome.UNREACHABLE
        except BaseException as exc:
            error = exc
        finally:
            self._finish(outcome, error)

    def _finish(self, outcome: Optional[RefreshOutcome], error: Optional[BaseException]) -> None:
        failed = outcome is None or outcome.gave_up
        with self._lock:
            self._state = RefreshState.FAILED if failed else RefreshState.IDLE
            waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            waiter.outcome = outcome
            waiter.error = error
            waiter.event.set()
        if failed:
            with self._lock:
                # A new 401 may already have started the next refresh.
                if self._state is RefreshState.FAILED:
                    self._state = RefreshState.IDLE
