"""Tests for SequenceBatchSubmitter."""

import asyncio

import pytest

from conftest import FakeBackend, GateBackend, make_entries, odata_error
from bulk_upload.core.batch.events import GroupCompleted, GroupProgress, GroupStarted, RunFinished
from bulk_upload.core.batch.grouping import group_by_sequence
from bulk_upload.core.batch.models import GroupOutcome, GroupResponse
from bulk_upload.core.batch.strategies import SequentialGroupStrategy, WindowedGroupStrategy
from bulk_upload.core.batch.submitter import SequenceBatchSubmitter, SubmissionCallbacks
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.errors import BatchValidationError, ResponseParseError
from bulk_upload.core.execution.retry_handler import RetryHandler
from bulk_upload.core.retry_config import RetryConfig


async def _collect(submitter, entries, token=None):
    return [event async for event in submitter.process(entries, token)]


class TestSubmitterValidation:
    """Test pre-flight validation."""

    def test_backend_required(self):
        """Test constructing without a backend fails."""
        with pytest.raises(BatchValidationError):
            SequenceBatchSubmitter(None)

    @pytest.mark.asyncio
    async def test_empty_entries_rejected(self, retry_handler):
        """Test empty input fails before any call."""
        backend = FakeBackend()
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        with pytest.raises(BatchValidationError):
            await _collect(submitter, [])

        assert backend.calls == []
        assert submitter.is_processing is False


class TestSubmitterEvents:
    """Test event stream contract."""

    @pytest.mark.asyncio
    async def test_event_order_and_single_done(self, retry_handler):
        """Test start/completed/progress per group and exactly one done at the end."""
        submitter = SequenceBatchSubmitter(FakeBackend(), retry_handler=retry_handler)

        events = await _collect(submitter, make_entries("1", "1", "2"))

        assert [e.type for e in events] == [
            "group_start", "group_completed", "group_progress",
            "group_start", "group_completed", "group_progress",
            "done",
        ]
        assert sum(isinstance(e, RunFinished) for e in events) == 1
        assert isinstance(events[-1], RunFinished)

    @pytest.mark.asyncio
    async def test_progress_is_cumulative(self, retry_handler):
        """Test processed_items counts entries across groups."""
        submitter = SequenceBatchSubmitter(FakeBackend(), retry_handler=retry_handler)

        events = await _collect(submitter, make_entries("A", "A", "B", "C", "C", "C"))
        progress = [e for e in events if isinstance(e, GroupProgress)]

        assert [p.processed_items for p in progress] == [2, 3, 6]
        assert all(p.total_items == 6 for p in progress)
        assert [p.group_index for p in progress] == [1, 2, 3]
        assert all(p.total_groups == 3 for p in progress)

    @pytest.mark.asyncio
    async def test_group_started_carries_sequence(self, retry_handler):
        """Test group_start events describe the group."""
        submitter = SequenceBatchSubmitter(FakeBackend(), retry_handler=retry_handler)

        events = await _collect(submitter, make_entries("X", "Y", "X"))
        started = [e for e in events if isinstance(e, GroupStarted)]

        assert [(s.sequence_id, s.entry_count) for s in started] == [("X", 2), ("Y", 1)]

    @pytest.mark.asyncio
    async def test_groups_submitted_in_first_appearance_order(self, retry_handler):
        """Test backend sees groups one at a time in order."""
        backend = FakeBackend()
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        await _collect(submitter, make_entries("3", "1", "3", "2"))

        assert backend.called_sequences == ["3", "1", "2"]
        assert [e["Description"] for e in backend.calls[0].raw_entries] == ["Line 0", "Line 2"]

    @pytest.mark.asyncio
    async def test_entries_are_not_mutated(self, retry_handler):
        """Test caller entries are left untouched."""

        async def mutate(group):
            for entry in group.raw_entries:
                entry["Mutated"] = True
            return GroupResponse()

        entries = make_entries("1")
        submitter = SequenceBatchSubmitter(FakeBackend({"1": [mutate]}), retry_handler=retry_handler)

        await _collect(submitter, entries)

        assert "Mutated" not in entries[0]


class TestSubmitterOutcomes:
    """Test per-entry outcomes and aggregation."""

    @pytest.mark.asyncio
    async def test_all_success(self, retry_handler):
        """Test one success record per entry with document numbers."""
        backend = FakeBackend({"1": [GroupResponse(items=[{"AssetNumber": "100"}, {"AssetNumber": "101"}], message="Created")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1", "1")))[-1]

        assert done.error is None
        assert done.result.success_count == 2
        assert [r.document_number for r in done.result.success_records] == ["100", "101"]
        assert done.result.success_records[0].message == "Created"

    @pytest.mark.asyncio
    async def test_single_document_for_many_lines(self, retry_handler):
        """Test one confirmation item is reused for every line."""
        backend = FakeBackend({"1": [{"PurchaseOrder": "4500000001"}]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1", "1", "1")))[-1]

        assert [r.document_number for r in done.result.success_records] == ["4500000001"] * 3

    @pytest.mark.asyncio
    async def test_partial_failure_continues(self, retry_handler):
        """Test a failed group does not stop later groups."""
        backend = FakeBackend({"2": [odata_error("AA/345", "Asset class does not exist")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        events = await _collect(submitter, make_entries("1", "2", "2", "3"))
        done = events[-1]

        assert backend.called_sequences == ["1", "2", "3"]
        assert done.result.success_count == 2
        assert done.result.failure_count == 2
        assert done.result.failed_groups == ["2"]
        assert done.error.code == "PARTIAL_FAILURE"
        assert done.error.message == "1 of 3 sequence groups failed: Asset class does not exist"

        failed = [e for e in events if isinstance(e, GroupCompleted) and not e.succeeded]
        assert [r.entry_index for r in failed[0].error_records] == [1, 2]
        assert failed[0].error_records[0].error_code == "AA/345"
        assert failed[0].error_records[0].error_kind == "backend"

    @pytest.mark.asyncio
    async def test_all_groups_failed(self, retry_handler):
        """Test BATCH_FAILED when nothing succeeded."""
        backend = FakeBackend({"1": [odata_error("E1", "no")], "2": [odata_error("E2", "no")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1", "2")))[-1]

        assert done.error.code == "BATCH_FAILED"
        assert done.result.success_count == 0

    @pytest.mark.asyncio
    async def test_every_entry_accounted_exactly_once(self, retry_handler):
        """Test success and error indexes partition the input."""
        backend = FakeBackend({"B": [odata_error("E1", "no")], "D": [RuntimeError("boom")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)
        entries = make_entries("A", "B", "A", "C", "D", "B", None)

        done = (await _collect(submitter, entries))[-1]
        indexes = [r.entry_index for r in done.result.success_records] + [
            r.entry_index for r in done.result.error_records
        ]

        assert sorted(indexes) == list(range(len(entries)))
        assert done.result.not_attempted_count == 0

    @pytest.mark.asyncio
    async def test_lock_error_retried_then_success(self, retry_handler):
        """Test ME/006 twice then success is a success with two retries."""
        backend = FakeBackend({"1": [odata_error("ME/006", "Locked"), odata_error("ME/006", "Locked")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        events = await _collect(submitter, make_entries("1"))
        completed = [e for e in events if isinstance(e, GroupCompleted)][0]

        assert len(backend.calls) == 3
        assert completed.succeeded
        assert completed.retries == 2
        assert events[-1].error is None

    @pytest.mark.asyncio
    async def test_lock_error_exhausts_retries(self, retry_handler):
        """Test retries_attempted is reported when retries run out."""
        backend = FakeBackend({"1": [odata_error("ME/006", "Locked") for _ in range(10)]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1")))[-1]

        assert len(backend.calls) == 4
        assert done.result.error_records[0].retries_attempted == 3
        assert done.result.error_records[0].error_code == "ME/006"

    @pytest.mark.asyncio
    async def test_unreadable_success_payload(self, retry_handler):
        """Test a malformed success payload is a response_parse error."""
        backend = FakeBackend({"1": [ResponseParseError("non-JSON body", raw="<html>ok</html>", status_code=201)]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1")))[-1]
        record = done.result.error_records[0]

        assert len(backend.calls) == 1
        assert record.error_kind == "response_parse"
        assert record.error_details == "<html>ok</html>"

    @pytest.mark.asyncio
    async def test_unsupported_response_type(self, retry_handler):
        """Test a backend returning junk is reported, not raised."""

        async def junk(group):
            return 42

        submitter = SequenceBatchSubmitter(FakeBackend({"1": [junk]}), retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1")))[-1]

        assert done.result.error_records[0].error_code == "RESPONSE_PARSE_ERROR"


class TestSubmitterCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_later_groups(self, retry_handler):
        """Test cancelling during group 2 leaves groups 3+ unsubmitted."""
        token = CancellationToken()

        async def cancel_then_succeed(group):
            token.cancel()
            return GroupResponse()

        backend = FakeBackend({"2": [cancel_then_succeed]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1", "2", "3", "4"), token))[-1]

        assert backend.called_sequences == ["1", "2"]
        assert done.cancelled is True
        assert done.result.completed_groups == 2
        assert done.result.success_count == 2
        assert done.result.not_attempted_count == 2

    @pytest.mark.asyncio
    async def test_cancel_after_last_group_is_not_cancelled(self, retry_handler):
        """Test a late cancel does not turn a full run into a cancelled one."""
        token = CancellationToken()

        async def cancel_then_succeed(group):
            token.cancel()
            return GroupResponse()

        submitter = SequenceBatchSubmitter(FakeBackend({"2": [cancel_then_succeed]}), retry_handler=retry_handler)

        done = (await _collect(submitter, make_entries("1", "2"), token))[-1]

        assert done.cancelled is False

    @pytest.mark.asyncio
    async def test_cancel_method_signals_active_run(self, retry_handler):
        """Test submitter.cancel() reaches the running token."""
        backend = GateBackend()
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        assert submitter.cancel() is False

        task = asyncio.create_task(_collect(submitter, make_entries("1", "2")))
        await asyncio.wait_for(backend.entered.wait(), timeout=1.0)

        assert submitter.is_processing is True
        assert submitter.cancel() is True

        backend.release()
        events = await asyncio.wait_for(task, timeout=1.0)

        assert backend.called_sequences == ["1"]
        assert events[-1].cancelled is True
        assert submitter.is_processing is False

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self, retry_handler):
        """Test a second process() call while running fails fast."""
        backend = GateBackend()
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        task = asyncio.create_task(_collect(submitter, make_entries("1")))
        await asyncio.wait_for(backend.entered.wait(), timeout=1.0)

        with pytest.raises(BatchValidationError):
            await _collect(submitter, make_entries("2"))

        backend.release()
        await task


class TestWindowedStrategy:
    """Test opt-in bounded concurrency."""

    def test_window_bounds(self):
        """Test window size must be 1..3."""
        with pytest.raises(ValueError):
            WindowedGroupStrategy(window_size=0)
        with pytest.raises(ValueError):
            WindowedGroupStrategy(window_size=4)

    @pytest.mark.asyncio
    async def test_outcomes_yielded_in_group_order(self, retry_handler):
        """Test group 1 is reported first even when group 2 finishes first."""

        async def slow(group):
            await asyncio.sleep(0.05)
            return GroupResponse(items=[{"AssetNumber": "slow"}])

        backend = FakeBackend({"1": [slow]})
        submitter = SequenceBatchSubmitter(
            backend, retry_handler=retry_handler, strategy=WindowedGroupStrategy(window_size=2)
        )

        events = await _collect(submitter, make_entries("1", "2", "3"))
        completed = [e for e in events if isinstance(e, GroupCompleted)]

        assert [c.sequence_id for c in completed] == ["1", "2", "3"]
        assert events[-1].result.success_count == 3

    @pytest.mark.asyncio
    async def test_event_order_matches_sequential(self, retry_handler):
        """Test group i's progress precedes group i+1's start while groups overlap."""
        in_flight = []
        peak = []

        async def overlapping(group):
            in_flight.append(group.sequence_id)
            peak.append(len(in_flight))
            await asyncio.sleep(0.02)
            in_flight.remove(group.sequence_id)
            return GroupResponse()

        backend = FakeBackend({key: [overlapping] for key in ("A", "B", "C")})
        submitter = SequenceBatchSubmitter(
            backend, retry_handler=retry_handler, strategy=WindowedGroupStrategy(window_size=2)
        )

        events = await _collect(submitter, make_entries("A", "B", "C"))

        assert [(e.type, getattr(e, "group_index", None)) for e in events] == [
            ("group_start", 1), ("group_completed", 1), ("group_progress", 1),
            ("group_start", 2), ("group_completed", 2), ("group_progress", 2),
            ("group_start", 3), ("group_completed", 3), ("group_progress", 3),
            ("done", None),
        ]
        assert max(peak) == 2

    @pytest.mark.asyncio
    async def test_cancel_settles_groups_in_flight(self, retry_handler):
        """Test groups already posted are reported and later groups are skipped."""
        backend = GateBackend()
        token = CancellationToken()
        submitter = SequenceBatchSubmitter(
            backend, retry_handler=retry_handler, strategy=WindowedGroupStrategy(window_size=2)
        )

        task = asyncio.create_task(_collect(submitter, make_entries("1", "2", "3", "4"), token))
        await asyncio.wait_for(backend.entered.wait(), timeout=1.0)
        token.cancel()
        backend.release()
        events = await asyncio.wait_for(task, timeout=1.0)
        done = events[-1]

        assert sorted(backend.called_sequences) == ["1", "2"]
        assert [e.sequence_id for e in events if isinstance(e, GroupCompleted)] == ["1", "2"]
        assert done.cancelled is True
        assert done.result.success_count == 2
        assert done.result.not_attempted_count == 2

    @pytest.mark.asyncio
    async def test_closing_stream_waits_for_posted_groups(self):
        """Test an abandoned stream still lets posted groups finish."""
        finished = []

        async def submit_group(group, token):
            await asyncio.sleep(0.02 * group.index)
            finished.append(group.sequence_id)
            return GroupOutcome(group=group)

        groups = group_by_sequence(make_entries("1", "2", "3"))
        stream = WindowedGroupStrategy(window_size=2).execute(groups, submit_group, CancellationToken())

        assert isinstance(await stream.__anext__(), GroupStarted)
        assert (await stream.__anext__()).group.sequence_id == "1"
        await stream.aclose()

        assert finished == ["1", "2"]


class TestSequentialStrategy:
    """Test the default one-group-at-a-time strategy."""

    @pytest.mark.asyncio
    async def test_cancel_during_inter_group_delay(self, retry_handler):
        """Test the pause between groups wakes up on cancel."""
        backend = FakeBackend()
        token = CancellationToken()
        submitter = SequenceBatchSubmitter(
            backend,
            retry_handler=retry_handler,
            strategy=SequentialGroupStrategy(inter_group_delay=30.0),
        )

        task = asyncio.create_task(_collect(submitter, make_entries("1", "2", "3"), token))
        while not backend.calls:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.02)
        token.cancel()
        events = await asyncio.wait_for(task, timeout=1.0)

        assert backend.called_sequences == ["1"]
        assert events[-1].cancelled is True
        assert events[-1].result.not_attempted_count == 2

    @pytest.mark.asyncio
    async def test_cancel_during_retry_wait(self):
        """Test a group waiting to retry ends as an error and later groups are skipped."""
        backend = FakeBackend({"1": [odata_error("ME/006", "Document locked") for _ in range(5)]})
        token = CancellationToken()
        handler = RetryHandler(RetryConfig(initial_delay=30.0, max_delay=30.0))
        submitter = SequenceBatchSubmitter(backend, retry_handler=handler)

        task = asyncio.create_task(_collect(submitter, make_entries("1", "1", "2"), token))
        while not backend.calls:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.02)
        token.cancel()
        events = await asyncio.wait_for(task, timeout=1.0)
        done = events[-1]

        assert backend.called_sequences == ["1"]
        assert done.cancelled is True
        assert [r.entry_index for r in done.result.error_records] == [0, 1]
        assert all(r.retries_attempted == 0 for r in done.result.error_records)
        assert done.result.error_records[0].error_code == "ME/006"
        assert done.result.not_attempted_count == 1


class TestSubmitCallbacks:
    """Test callback-table adapter."""

    @pytest.mark.asyncio
    async def test_success_callbacks(self, retry_handler):
        """Test batch_start/progress then success fire."""
        calls = []
        callbacks = SubmissionCallbacks(
            batch_start=lambda i, n: calls.append(("start", i, n)),
            batch_progress=lambda i, n, p, t: calls.append(("progress", i, n, p, t)),
            success=lambda result: calls.append(("success", result.success_count)),
            error=lambda error, result: calls.append(("error", error.code)),
        )
        submitter = SequenceBatchSubmitter(FakeBackend(), retry_handler=retry_handler)

        result = await submitter.submit(make_entries("1", "2"), callbacks)

        assert result.success_count == 2
        assert calls == [
            ("start", 1, 2),
            ("progress", 1, 2, 1, 2),
            ("start", 2, 2),
            ("progress", 2, 2, 2, 2),
            ("success", 2),
        ]

    @pytest.mark.asyncio
    async def test_error_callback_and_failing_callback(self, retry_handler):
        """Test error fires once and a raising callback does not stop the run."""
        calls = []

        def broken_start(i, n):
            raise RuntimeError("ui gone")

        callbacks = SubmissionCallbacks(
            batch_start=broken_start,
            success=lambda result: calls.append("success"),
            error=lambda error, result: calls.append(error.code),
        )
        backend = FakeBackend({"2": [odata_error("E1", "no")]})
        submitter = SequenceBatchSubmitter(backend, retry_handler=retry_handler)

        result = await submitter.submit(make_entries("1", "2"), callbacks)

        assert calls == ["PARTIAL_FAILURE"]
        assert result.failure_count == 1
