"""
Test suite for progress stream emission and the stream consumer.

System role: Verification of NDJSON framing and idempotent folding
"""

import uuid

import pytest

from batchgen.core.stream import (
    ProgressStreamConsumer,
    batch_info_event,
    complete_event,
    error_event,
    progress_event,
    result_event,
)
from batchgen.models.streaming import CompletionSummary, ProgressEvent, ProgressEventType


@pytest.fixture
def summary() -> CompletionSummary:
    return CompletionSummary(
        job_id=uuid.uuid4(),
        state="completed",
        total=3,
        success_count=2,
        failed_count=1,
        estimated_cost=0.0225,
    )


class TestEventWireShape:
    def test_event_should_serialize_as_single_key_object(self) -> None:
        event = batch_info_event("b1", None, "completed", None, {"completed": 3})

        assert event.to_dict() == {
            "batchInfo": {
                "phase1Ref": "b1",
                "phase2Ref": None,
                "phase1Status": "completed",
                "phase2Status": None,
                "requestCounts": {"completed": 3},
            }
        }
        assert event.to_line().endswith("\n")

    def test_from_dict_should_reject_multiple_keys(self) -> None:
        with pytest.raises(ValueError):
            ProgressEvent.from_dict({"progress": {}, "result": {}})

    def test_terminal_events(self, summary) -> None:
        assert complete_event(summary).is_terminal
        assert error_event("boom").is_terminal
        assert not progress_event(1, 2, "x").is_terminal


class TestProgressStreamConsumer:
    """Test suite for ProgressStreamConsumer."""

    def test_should_hold_partial_lines_across_chunks(self) -> None:
        # Arrange
        consumer = ProgressStreamConsumer()
        line = progress_event(5, 10, "Phase 1: in_progress").to_line().encode()

        # Act
        first = consumer.feed(line[:7])
        second = consumer.feed(line[7:])

        # Assert
        assert first == []
        assert len(second) == 1
        assert consumer.progress.current == 5

    def test_should_decode_multibyte_characters_split_across_chunks(self) -> None:
        consumer = ProgressStreamConsumer()
        data = progress_event(1, 2, "Motorüberhitzung").to_line().encode("utf-8")
        split = data.index("ü".encode("utf-8")) + 1

        consumer.feed(data[:split])
        consumer.feed(data[split:])

        assert consumer.progress.stage == "Motorüberhitzung"

    def test_replayed_results_should_not_double_count(self) -> None:
        # Arrange
        consumer = ProgressStreamConsumer()
        lines = "".join(
            [
                result_event("item-1", True).to_line(),
                result_event("item-2", False, "bad").to_line(),
                result_event("item-1", True).to_line(),
            ]
        )

        # Act
        consumer.feed(lines)
        consumer.feed(result_event("item-2", False, "bad").to_line())

        # Assert
        assert consumer.success_count == 1
        assert consumer.failed_count == 1

    def test_summary_should_win_over_local_tally(self, summary) -> None:
        consumer = ProgressStreamConsumer()
        consumer.feed(result_event("item-1", True).to_line())
        consumer.feed(complete_event(summary).to_line())

        assert consumer.done
        assert consumer.success_count == 2
        assert consumer.failed_count == 1

    def test_should_accept_sse_prefix_and_skip_malformed_lines(self) -> None:
        consumer = ProgressStreamConsumer()

        events = consumer.feed("data: " + progress_event(1, 4, "x").to_line() + "garbage\n\n")

        assert [e.type for e in events] == [ProgressEventType.PROGRESS]
        assert consumer.malformed_lines == 1

    def test_finish_should_flush_unterminated_line(self) -> None:
        consumer = ProgressStreamConsumer()
        consumer.feed(error_event("store down").to_line().rstrip("\n"))

        flushed = consumer.finish()

        assert len(flushed) == 1
        assert consumer.error == "store down"

    def test_abort_should_ignore_further_chunks(self) -> None:
        consumer = ProgressStreamConsumer()
        consumer.abort()

        assert consumer.feed(progress_event(1, 2, "x").to_line()) == []
        assert consumer.progress is None

    async def test_consume_should_stop_at_terminal_event(self, summary) -> None:
        # Arrange
        async def chunks():
            yield progress_event(0, 3, "start").to_line().encode()
            yield complete_event(summary).to_line().encode()
            yield result_event("item-9", True).to_line().encode()

        # Act
        consumer = await ProgressStreamConsumer().consume(chunks())

        # Assert
        assert consumer.summary is not None
        assert "item-9" not in consumer.results
