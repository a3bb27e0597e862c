"""Tests for verdict publication: idempotence, retry and give-up."""

import asyncio

import pytest

from carbon_avs.ledger.memory import InMemoryLedger
from carbon_avs.utils import PublishFailure
from carbon_avs.verification.models import Verdict
from carbon_avs.verification.publisher import VerdictPublisher
from tests.fakes import FlakySink, RecordingSink, RejectingSink

VERDICT = Verdict(True, 78, ("Verra", "Gold Standard"))


class TestDelivery:
    def test_publish_calls_sink_once(self):
        sink = RecordingSink()
        asyncio.run(VerdictPublisher(sink).publish(7, VERDICT))
        assert sink.calls == [("7", True, 78, ["Verra", "Gold Standard"])]

    def test_identical_verdict_not_resent(self):
        sink = RecordingSink()
        publisher = VerdictPublisher(sink)

        async def _run():
            await publisher.publish("7", VERDICT)
            await publisher.publish(7, VERDICT)

        asyncio.run(_run())
        assert len(sink.calls) == 1
        assert publisher.last_delivered(7) == VERDICT

    def test_changed_verdict_is_resent(self):
        sink = RecordingSink()
        publisher = VerdictPublisher(sink)

        async def _run():
            await publisher.publish("7", VERDICT)
            await publisher.publish("7", Verdict(False, 58, ("Verra",)))

        asyncio.run(_run())
        assert len(sink.calls) == 2
        assert publisher.last_delivered("7").quality_score == 58

    def test_ledger_state_unchanged_by_repeat(self):
        ledger = InMemoryLedger()

        async def _run():
            await ledger.submit_verification("7", True, 78, ["Verra"])
            before = ledger.snapshot()
            await ledger.submit_verification("7", True, 78, ["Verra"])
            return before

        before = asyncio.run(_run())
        assert ledger.snapshot() == before


class TestRetry:
    def test_transient_failure_retried(self):
        sink = FlakySink(failures=2)
        publisher = VerdictPublisher(sink, max_attempts=3, backoff_seconds=0)
        asyncio.run(publisher.publish("7", VERDICT))
        assert sink.attempts == 3
        assert len(sink.calls) == 1

    def test_exhaustion_raises_publish_failure(self):
        sink = FlakySink(failures=5)
        publisher = VerdictPublisher(sink, max_attempts=3, backoff_seconds=0)
        with pytest.raises(PublishFailure) as exc_info:
            asyncio.run(publisher.publish("7", VERDICT))
        assert exc_info.value.attempts == 3
        assert exc_info.value.credit_id == "7"
        assert sink.attempts == 3
        assert publisher.last_delivered("7") is None

    def test_rejection_is_not_retried(self):
        sink = RejectingSink()
        publisher = VerdictPublisher(sink, max_attempts=5, backoff_seconds=0)
        with pytest.raises(PublishFailure, match="bad credit"):
            asyncio.run(publisher.publish("7", VERDICT))
        assert sink.attempts == 1

    def test_zero_attempts_means_one(self):
        assert VerdictPublisher(RecordingSink(), max_attempts=0).max_attempts == 1
