from __future__ import annotations

import asyncio
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from ocr_estimate.core.schema import AnalysisJob, AnalysisResult, SubmissionResult
from ocr_estimate.core.validation import TransportError, ValidationError
from ocr_estimate.domain import LogicalDocument
from ocr_estimate.workers.tracker import AnalysisJobTracker, TrackerState, status_from_results

INTERVAL = 0.01

DOCUMENTS = {
    "d1": LogicalDocument(id="d1", display_filename="a.pdf", member_file_ids=["d1"], aggregate_status="completed"),
    "d2": LogicalDocument(id="d2", display_filename="b.pdf", member_file_ids=["d2"], aggregate_status="completed"),
    "busy": LogicalDocument(id="busy", display_filename="c.pdf", member_file_ids=["busy"], aggregate_status="partial"),
}


def _result(analysis_id: str, *, failed: bool = False) -> AnalysisResult:
    return AnalysisResult(
        analysis_id=analysis_id,
        source_file_id=analysis_id,
        word_count=300,
        processing_status="failed" if failed else "completed",
    )


class ScriptedGateway:
    """Answers submissions and polls from a fixed script."""

    def __init__(self, submission, polls=()):
        self.submission = submission
        self.polls = list(polls)
        self.submitted: list[tuple[str, list[str]]] = []
        self.poll_calls = 0

    async def submit_analysis(self, batch_id, file_ids):
        self.submitted.append((batch_id, list(file_ids)))
        if isinstance(self.submission, Exception):
            raise self.submission
        return self.submission

    async def poll_analysis(self, job_id):
        self.poll_calls += 1
        outcome = self.polls.pop(0) if len(self.polls) > 1 else self.polls[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class BlockingGateway:
    """Holds every call open until ``release`` is set."""

    def __init__(self, submission, poll_outcome=None):
        self.submission = submission
        self.poll_outcome = poll_outcome
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def submit_analysis(self, batch_id, file_ids):
        if self.submission.mode == "sync":
            self.started.set()
            await self.release.wait()
        return self.submission

    async def poll_analysis(self, job_id):
        self.started.set()
        await self.release.wait()
        return self.poll_outcome


def _tracker(gateway, collected=None):
    def on_results(job, results):
        if collected is not None:
            collected.append((job, results))

    return AnalysisJobTracker(gateway, poll_interval=INTERVAL, on_results=on_results)


def test_status_from_results():
    assert status_from_results([]) is TrackerState.COMPLETED
    assert status_from_results([_result("a")]) is TrackerState.COMPLETED
    assert status_from_results([_result("a"), _result("b", failed=True)]) is TrackerState.PARTIAL
    assert status_from_results([_result("a", failed=True)]) is TrackerState.FAILED


def test_submit_rejects_invalid_selection():
    gateway = ScriptedGateway(SubmissionResult(mode="sync"))
    tracker = _tracker(gateway)

    async def scenario():
        with pytest.raises(ValidationError):
            await tracker.submit("b1", [], DOCUMENTS)
        with pytest.raises(ValidationError):
            await tracker.submit("b1", ["busy"], DOCUMENTS)
        with pytest.raises(ValidationError):
            await tracker.submit("b1", ["ghost"], DOCUMENTS)

    asyncio.run(scenario())

    assert tracker.state is TrackerState.IDLE
    assert gateway.submitted == []


def test_sync_submission_completes_inline():
    results = [_result("d1"), _result("d2")]
    gateway = ScriptedGateway(SubmissionResult(mode="sync", results=results))
    collected: list = []
    tracker = _tracker(gateway, collected)

    state = asyncio.run(tracker.submit("b1", ["d1", "d2", "d1"], DOCUMENTS))

    assert state is TrackerState.COMPLETED
    assert gateway.submitted == [("b1", ["d1", "d2"])]
    assert [result.analysis_id for result in tracker.results] == ["d1", "d2"]
    assert len(collected) == 1
    assert tracker.polling is False


def test_sync_submission_with_failures_is_partial():
    gateway = ScriptedGateway(SubmissionResult(mode="sync", results=[_result("d1"), _result("d2", failed=True)]))
    tracker = _tracker(gateway)

    assert asyncio.run(tracker.submit("b1", ["d1", "d2"], DOCUMENTS)) is TrackerState.PARTIAL


def test_async_job_is_polled_until_terminal():
    running = AnalysisJob(id="job-1", status="processing", total_files=2, completed_files=1)
    done = AnalysisJob(id="job-1", status="completed", total_files=2, completed_files=2)
    gateway = ScriptedGateway(
        SubmissionResult(mode="async", job_id="job-1"),
        polls=[
            TransportError("connection reset"),
            (running, []),
            (done, [_result("d1"), _result("d2")]),
        ],
    )
    collected: list = []
    tracker = _tracker(gateway, collected)

    async def scenario():
        state = await tracker.submit("b1", ["d1", "d2"], DOCUMENTS)
        assert state is TrackerState.PROCESSING
        assert tracker.polling is True
        assert tracker.results == []
        assert collected == []
        return await tracker.wait()

    final = asyncio.run(scenario())

    assert final is TrackerState.COMPLETED
    assert gateway.poll_calls == 3
    assert tracker.job.completed_files == 2
    assert len(tracker.results) == 2
    assert len(collected) == 1


def test_failed_async_job_is_terminal():
    failed = AnalysisJob(id="job-9", status="failed", total_files=1)
    gateway = ScriptedGateway(SubmissionResult(mode="async", job_id="job-9"), polls=[(failed, [])])
    tracker = _tracker(gateway)

    async def scenario():
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        return await tracker.wait()

    assert asyncio.run(scenario()) is TrackerState.FAILED


def test_submit_while_processing_is_rejected():
    running = AnalysisJob(id="job-1", status="processing")
    gateway = ScriptedGateway(SubmissionResult(mode="async", job_id="job-1"), polls=[(running, [])])
    tracker = _tracker(gateway)

    async def scenario():
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        with pytest.raises(ValidationError):
            await tracker.submit("b1", ["d2"], DOCUMENTS)
        tracker.teardown()

    asyncio.run(scenario())

    assert len(gateway.submitted) == 1


def test_submit_transport_failure_returns_to_idle():
    gateway = ScriptedGateway(TransportError("service down", status_code=503))
    tracker = _tracker(gateway)

    with pytest.raises(TransportError):
        asyncio.run(tracker.submit("b1", ["d1"], DOCUMENTS))

    assert tracker.state is TrackerState.IDLE


def test_poll_failures_do_not_change_state():
    gateway = ScriptedGateway(SubmissionResult(mode="async", job_id="job-1"), polls=[TransportError("timeout")])
    tracker = _tracker(gateway)

    async def scenario():
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        await asyncio.sleep(INTERVAL * 5)
        state = tracker.state
        calls = gateway.poll_calls
        tracker.teardown()
        return state, calls

    state, calls = asyncio.run(scenario())

    assert state is TrackerState.PROCESSING
    assert 1 <= calls <= 6


def test_malformed_poll_payload_is_retried():
    done = AnalysisJob(id="job-1", status="completed", total_files=1, completed_files=1)
    gateway = ScriptedGateway(
        SubmissionResult(mode="async", job_id="job-1"),
        polls=[TypeError("unexpected payload"), (done, [_result("d1")])],
    )
    tracker = _tracker(gateway)

    async def scenario():
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        return await tracker.wait()

    final = asyncio.run(scenario())

    assert final is TrackerState.COMPLETED
    assert gateway.poll_calls == 2
    assert tracker.polling is False
    assert len(tracker.results) == 1

def test_teardown_is_idempotent():
    running = AnalysisJob(id="job-1", status="processing")
    gateway = ScriptedGateway(SubmissionResult(mode="async", job_id="job-1"), polls=[(running, [])])
    tracker = _tracker(gateway)

    async def scenario():
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        tracker.teardown()
        tracker.teardown()
        await asyncio.sleep(INTERVAL * 3)

    asyncio.run(scenario())
    tracker.teardown()

    assert tracker.state is TrackerState.IDLE
    assert tracker.job is None
    assert tracker.polling is False


def test_late_poll_response_after_teardown_is_discarded():
    done = AnalysisJob(id="job-1", status="completed", total_files=1, completed_files=1)

    async def scenario():
        gateway = BlockingGateway(SubmissionResult(mode="async", job_id="job-1"), poll_outcome=(done, [_result("d1")]))
        collected: list = []
        tracker = _tracker(gateway, collected)
        await tracker.submit("b1", ["d1"], DOCUMENTS)
        await gateway.started.wait()
        tracker.teardown()
        gateway.release.set()
        await asyncio.sleep(INTERVAL * 3)
        return tracker, collected

    tracker, collected = asyncio.run(scenario())

    assert tracker.state is TrackerState.IDLE
    assert tracker.job is None
    assert tracker.results == []
    assert collected == []


def test_late_submission_response_after_teardown_is_discarded():
    async def scenario():
        gateway = BlockingGateway(SubmissionResult(mode="sync", results=[_result("d1")]))
        collected: list = []
        tracker = _tracker(gateway, collected)
        pending = asyncio.create_task(tracker.submit("b1", ["d1"], DOCUMENTS))
        await gateway.started.wait()
        assert tracker.state is TrackerState.SUBMITTING
        tracker.teardown()
        gateway.release.set()
        state = await pending
        return tracker, state, collected

    tracker, state, collected = asyncio.run(scenario())

    assert state is TrackerState.IDLE
    assert tracker.results == []
    assert collected == []


def test_restore_and_resume():
    finished = AnalysisJob(id="job-2", status="partial", total_files=2, completed_files=1, failed_files=1)
    collected: list = []
    tracker = _tracker(ScriptedGateway(SubmissionResult(mode="sync")), collected)

    tracker.restore(finished, [_result("d1"), _result("d2", failed=True)])

    assert tracker.state is TrackerState.PARTIAL
    assert tracker.job.id == "job-2"
    assert len(collected) == 1

    running = AnalysisJob(id="job-3", status="processing")
    done = AnalysisJob(id="job-3", status="completed")
    gateway = ScriptedGateway(SubmissionResult(mode="sync"), polls=[(done, [_result("d1")])])
    resumed = _tracker(gateway)

    async def scenario():
        resumed.resume(running)
        assert resumed.state is TrackerState.PROCESSING
        return await resumed.wait()

    assert asyncio.run(scenario()) is TrackerState.COMPLETED
