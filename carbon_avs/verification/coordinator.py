"""Verification coordinator - one wave per credit at a time.

A *wave* is one fan-out / aggregate / publish cycle:

1. ``submit`` moves the credit from ``unverified`` to ``pending`` under the
   credit's lock and starts a wave task. Requests that arrive while the
   credit is ``pending`` join that task instead of starting another one.
2. The wave queries every registry client concurrently. Each query is
   bounded by its client's timeout and always settles to an outcome.
3. Once all outcomes are in, the aggregator scores them.
4. The publisher delivers the verdict. Only then does the credit become
   ``verified`` or ``rejected``. If delivery fails for good the credit is
   parked in ``publish_failed`` with its verdict kept for ``republish``.

Cancellation abandons outstanding registry queries only. Once a wave has
started publishing it runs to completion, so the credit state never
contradicts what the ledger holds.

Thread Safety
-------------
Everything runs on one event loop. All state changes for a credit happen
while holding that credit's ``asyncio.Lock`` and are checked against the
wave id that owns the credit.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
from collections.abc import Sequence
from typing import Protocol

from carbon_avs.registries.models import Failure, FailureKind, QueryOutcome, RegistrySource
from carbon_avs.utils import InvariantViolation, normalize_credit_id
from carbon_avs.verification.aggregator import ResultAggregator
from carbon_avs.verification.models import (
    AGGREGATION_ERROR,
    CreditVerificationState,
    Verdict,
    VerificationRequest,
    VerificationStatus,
)
from carbon_avs.verification.publisher import VerdictPublisher
from carbon_avs.verification.state import VerificationStateStore

logger = logging.getLogger(__name__)


class RegistryQuerier(Protocol):
    source: RegistrySource
    timeout: float

    async def query(self, credit_id: int | str) -> QueryOutcome: ...


class VerificationCoordinator:
    """Owns verification state and runs verification waves."""

    def __init__(
        self,
        clients: Sequence[RegistryQuerier],
        publisher: VerdictPublisher,
        aggregator: ResultAggregator | None = None,
        store: VerificationStateStore | None = None,
    ) -> None:
        if not clients:
            raise ValueError("At least one registry client is required")
        self._clients = list(clients)
        self._publisher = publisher
        self._aggregator = aggregator or ResultAggregator()
        self._store = store or VerificationStateStore()
        self._waves: dict[str, asyncio.Task] = {}
        self._publishing: set[str] = set()
        self._request_seq = itertools.count(1)
        self._wave_seq = itertools.count(1)

    @property
    def clients(self) -> list[RegistryQuerier]:
        return list(self._clients)

    @property
    def store(self) -> VerificationStateStore:
        return self._store

    @property
    def wave_deadline(self) -> float:
        """Upper bound on fan-out time: queries run in parallel."""
        return max(client.timeout for client in self._clients)

    def active_waves(self) -> int:
        return sum(1 for task in self._waves.values() if not task.done())

    def get_state(self, credit_id: int | str) -> CreditVerificationState:
        """Snapshot of a credit's state (``unverified`` if never seen).

        Read-only: unknown credits are not added to the store.
        """
        state = self._store.peek(credit_id)
        if state is None:
            return CreditVerificationState(credit_id=normalize_credit_id(credit_id))
        return state.snapshot()

    # -- Requests -------------------------------------------------------------

    async def submit(
        self,
        credit_id: int | str,
        requester: str,
        *,
        force: bool = False,
    ) -> asyncio.Future:
        """Start or join a wave for *credit_id* without waiting for it.

        Returns a future resolving to the credit's state once the applicable
        wave finishes. ``verified``/``rejected`` credits are not re-checked
        unless *force* is set.
        """
        key = normalize_credit_id(credit_id)
        request = VerificationRequest(key, requester, next(self._request_seq))

        async with self._store.lock(key):
            state = self._store.get(key)

            task = self._waves.get(key)
            if state.status == VerificationStatus.pending and task is not None and task.cancelled():
                # Cancelled wave whose done callback has not run yet
                self._abandon(key, state.wave_id)

            if state.status == VerificationStatus.pending:
                if task is None:
                    raise InvariantViolation(f"Credit {key} is pending with no wave running")
                state.requesters.append(requester)
                logger.info(
                    "Request #%d for credit %s joined wave %s (requester=%s)",
                    request.sequence, key, state.wave_id, requester,
                )
                return task

            if state.status.is_terminal and not force:
                logger.info(
                    "Credit %s already %s, skipping (requester=%s)",
                    key, state.status.value, requester,
                )
                done = asyncio.get_running_loop().create_future()
                done.set_result(state.snapshot())
                return done

            wave_id = self._begin_wave(state, request)
            return self._spawn(key, self._run_wave(request, wave_id), wave_id)

    async def request_verification(
        self,
        credit_id: int | str,
        requester: str,
        *,
        force: bool = False,
    ) -> CreditVerificationState:
        """Request verification and wait for the resulting state.

        Raises:
            PublishFailure: the verdict was computed but never delivered.
        """
        wave = await self.submit(credit_id, requester, force=force)
        return await asyncio.shield(wave)

    async def republish(self, credit_id: int | str) -> CreditVerificationState:
        """Retry delivery of the verdict kept by a ``publish_failed`` credit."""
        key = normalize_credit_id(credit_id)
        async with self._store.lock(key):
            state = self._store.peek(key)
            if state is None or state.status != VerificationStatus.publish_failed or state.verdict is None:
                status = state.status.value if state else VerificationStatus.unverified.value
                raise ValueError(f"Credit {key} has no undelivered verdict (status={status})")
            verdict = state.verdict
            request = VerificationRequest(key, "republish", next(self._request_seq))
            wave_id = self._begin_wave(state, request)
            task = self._spawn(key, self._deliver(key, wave_id, verdict), wave_id)
        return await asyncio.shield(task)

    async def cancel(self, credit_id: int | str) -> bool:
        """Abandon the in-flight wave for a credit. Returns False if none.

        Raises:
            ValueError: the wave is already publishing its verdict.
        """
        key = normalize_credit_id(credit_id)
        task = self._waves.get(key)
        if task is None or task.done():
            return False
        if key in self._publishing:
            raise ValueError(f"Credit {key} is already publishing its verdict")
        task.cancel()
        await asyncio.wait([task])
        return True

    async def shutdown(self) -> None:
        """Cancel every wave still querying; let publishing waves finish."""
        tasks = [t for t in self._waves.values() if not t.done()]
        for key, task in list(self._waves.items()):
            if key not in self._publishing:
                task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    # -- Wave lifecycle -------------------------------------------------------

    def _begin_wave(self, state: CreditVerificationState, request: VerificationRequest) -> int:
        wave_id = next(self._wave_seq)
        state.status = VerificationStatus.pending
        state.wave_id = wave_id
        state.request = request
        state.requesters = [request.requester]
        state.wave_count += 1
        state.last_error = ""
        state.touch()
        logger.info(
            "Credit %s -> pending (wave %d, request #%d, requester=%s)",
            state.credit_id, wave_id, request.sequence, request.requester,
        )
        return wave_id

    def _spawn(self, key: str, coro, wave_id: int) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"verify-{key}-wave-{wave_id}")
        self._waves[key] = task
        task.add_done_callback(functools.partial(self._wave_finished, key, wave_id))
        return task

    def _wave_finished(self, key: str, wave_id: int, task: asyncio.Task) -> None:
        if self._waves.get(key) is task:
            del self._waves[key]
        if task.cancelled():
            self._abandon(key, wave_id)
            return
        # Retrieve the exception so background waves never warn as unhandled;
        # publish failures were already logged when the state changed.
        exc = task.exception()
        if isinstance(exc, InvariantViolation):
            logger.error("Wave for credit %s aborted: %s", key, exc)
        elif exc is not None:
            logger.debug("Wave for credit %s ended with %s", key, type(exc).__name__)

    async def _run_wave(self, request: VerificationRequest, wave_id: int) -> CreditVerificationState:
        key = request.credit_id
        outcomes = await self._fan_out(key)
        verdict = self._aggregate(key, outcomes)
        return await self._deliver(key, wave_id, verdict)

    async def _deliver(self, key: str, wave_id: int, verdict: Verdict) -> CreditVerificationState:
        async with self._store.lock(key):
            # A wave that lost the credit must never reach the ledger
            self._owned_state(key, wave_id)
            self._publishing.add(key)

        try:
            await self._publisher.publish(key, verdict)
        except Exception as exc:
            async with self._store.lock(key):
                state = self._owned_state(key, wave_id)
                state.status = VerificationStatus.publish_failed
                state.verdict = verdict
                state.last_error = str(exc)
                state.touch()
            logger.error("Credit %s -> publish_failed (wave %d): %s", key, wave_id, exc)
            raise
        else:
            async with self._store.lock(key):
                state = self._owned_state(key, wave_id)
                state.status = (
                    VerificationStatus.verified if verdict.is_valid else VerificationStatus.rejected
                )
                state.verdict = verdict
                state.touch()
                logger.info(
                    "Credit %s -> %s (wave %d, score=%d)",
                    key, state.status.value, wave_id, verdict.quality_score,
                )
                return state.snapshot()
        finally:
            self._publishing.discard(key)

    def _abandon(self, key: str, wave_id: int) -> None:
        # Called from a done callback, so it cannot take the lock. Locked
        # sections never await between check and write.
        state = self._store.get(key)
        if state.wave_id == wave_id and state.status == VerificationStatus.pending:
            state.status = VerificationStatus.unverified
            state.verdict = None
            state.last_error = "Verification cancelled"
            state.touch()
            logger.info("Credit %s -> unverified (wave %d cancelled)", key, wave_id)

    def _owned_state(self, key: str, wave_id: int) -> CreditVerificationState:
        state = self._store.get(key)
        if state.wave_id != wave_id or state.status != VerificationStatus.pending:
            raise InvariantViolation(
                f"Wave {wave_id} lost ownership of credit {key} "
                f"(owner wave={state.wave_id}, status={state.status.value})"
            )
        return state

    # -- Fan-out and aggregation ----------------------------------------------

    async def _fan_out(self, key: str) -> list[QueryOutcome]:
        logger.info("Querying %d registries for credit %s", len(self._clients), key)
        outcomes = await asyncio.gather(*(self._query(client, key) for client in self._clients))
        if len(outcomes) != len(self._clients):
            raise InvariantViolation(
                f"Expected {len(self._clients)} outcomes for credit {key}, got {len(outcomes)}"
            )
        return list(outcomes)

    async def _query(self, client: RegistryQuerier, key: str) -> QueryOutcome:
        try:
            return await asyncio.wait_for(client.query(key), timeout=client.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s did not answer within %.1fs for credit %s",
                client.source.value, client.timeout, key,
            )
            return Failure(client.source, f"No answer within {client.timeout}s", FailureKind.timeout)
        except Exception as exc:
            logger.warning("%s query raised for credit %s: %r", client.source.value, key, exc)
            return Failure(client.source, str(exc) or type(exc).__name__)

    def _aggregate(self, key: str, outcomes: list[QueryOutcome]) -> Verdict:
        try:
            return self._aggregator.aggregate(outcomes)
        except Exception:
            logger.exception("Aggregation failed for credit %s", key)
            return Verdict.sentinel(AGGREGATION_ERROR)
