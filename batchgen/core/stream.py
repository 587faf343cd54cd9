"""
Progress stream emission helpers and the client-side consumer.

Emitter side: small constructors that turn pipeline observations into
ProgressEvent objects. Consumer side: ProgressStreamConsumer folds an NDJSON
byte stream into progress, per-key results, and the final summary.

Dependencies: batchgen.models.streaming
System role: Single-job synchronous progress protocol
"""

import codecs
import json
import logging
from typing import Any, AsyncIterable
from uuid import UUID

from batchgen.models.streaming import (
    BatchInfoPayload,
    CompletionSummary,
    ErrorPayload,
    ProgressEvent,
    ProgressEventType,
    ProgressPayload,
    ResultPayload,
)

logger = logging.getLogger(__name__)


def progress_event(current: int, total: int, stage: str) -> ProgressEvent:
    return ProgressEvent(
        type=ProgressEventType.PROGRESS,
        payload=ProgressPayload(current=current, total=total, stage=stage),
    )


def result_event(key: str, success: bool, error: str | None = None) -> ProgressEvent:
    return ProgressEvent(
        type=ProgressEventType.RESULT,
        payload=ResultPayload(key=key, success=success, error=error),
    )


def batch_info_event(
    phase1_ref: str | None,
    phase2_ref: str | None,
    phase1_status: str | None,
    phase2_status: str | None,
    request_counts: dict[str, Any] | None = None,
) -> ProgressEvent:
    return ProgressEvent(
        type=ProgressEventType.BATCH_INFO,
        payload=BatchInfoPayload(
            phase1_ref=phase1_ref,
            phase2_ref=phase2_ref,
            phase1_status=phase1_status,
            phase2_status=phase2_status,
            request_counts=request_counts,
        ),
    )


def complete_event(summary: CompletionSummary) -> ProgressEvent:
    return ProgressEvent(type=ProgressEventType.COMPLETE, payload=summary)


def error_event(message: str, job_id: UUID | None = None) -> ProgressEvent:
    return ProgressEvent(
        type=ProgressEventType.ERROR,
        payload=ErrorPayload(message=message, job_id=job_id),
    )


class ProgressStreamConsumer:
    """
    Incremental, idempotent consumer of a progress stream.

    Feed it raw chunks in arrival order. Complete lines are parsed and folded;
    a trailing partial line is held until a later chunk completes it. Lines
    may carry an SSE "data: " prefix.

    Folding rules:
        progress: last writer wins
        result: de-duplicated by key, a replayed key never counts twice
        batchInfo: last writer wins
        complete: summary becomes authoritative for the tallies
        error: recorded; the stream is over

    Attributes:
        progress: Latest progress payload
        batch_info: Latest batch info payload
        results: Result payload per correlation key
        summary: Final summary, once received
        error: Terminal error message, if any
        aborted: True after abort(); further chunks are ignored
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self.progress: ProgressPayload | None = None
        self.batch_info: BatchInfoPayload | None = None
        self.results: dict[str, ResultPayload] = {}
        self.summary: CompletionSummary | None = None
        self.error: str | None = None
        self.aborted = False
        self.malformed_lines = 0

    @property
    def done(self) -> bool:
        return self.summary is not None or self.error is not None

    @property
    def success_count(self) -> int:
        if self.summary is not None:
            return self.summary.success_count
        return sum(1 for result in self.results.values() if result.success)

    @property
    def failed_count(self) -> int:
        if self.summary is not None:
            return self.summary.failed_count
        return sum(1 for result in self.results.values() if not result.success)

    def feed(self, chunk: bytes | str) -> list[ProgressEvent]:
        """
        Consume one chunk.

        Returns:
            list[ProgressEvent]: Events completed by this chunk, in order
        """
        if self.aborted:
            return []
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(self._parse_line, lines) if event is not None]

    def finish(self) -> list[ProgressEvent]:
        """Flush a final line that arrived without a trailing newline."""
        if self.aborted:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        event = self._parse_line(tail)
        return [event] if event is not None else []

    def abort(self) -> None:
        """Stop local consumption. Server-side work is unaffected."""
        self.aborted = True
        self._buffer = ""

    async def consume(self, chunks: AsyncIterable[bytes | str]) -> "ProgressStreamConsumer":
        """Read chunks until the stream ends, a terminal event arrives, or abort()."""
        async for chunk in chunks:
            self.feed(chunk)
            if self.aborted or self.done:
                break
        else:
            self.finish()
        return self

    def _parse_line(self, line: str) -> ProgressEvent | None:
        line = line.strip()
        if line.startswith("data:"):
            line = line[len("data:"):].strip()
        if not line:
            return None
        try:
            event = ProgressEvent.from_dict(json.loads(line))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            self.malformed_lines += 1
            logger.warning(
                f"{__name__}:feed - Ignoring malformed stream line",
                extra={"error": str(e), "line_preview": line[:100]},
            )
            return None
        self.apply(event)
        return event

    def apply(self, event: ProgressEvent) -> None:
        """Fold one event into local state. Safe to call repeatedly with the same event."""
        if self.done and not event.is_terminal:
            return
        payload = event.payload
        if event.type is ProgressEventType.PROGRESS:
            self.progress = payload
        elif event.type is ProgressEventType.RESULT:
            self.results[payload.key] = payload
        elif event.type is ProgressEventType.BATCH_INFO:
            self.batch_info = payload
        elif event.type is ProgressEventType.COMPLETE:
            self.summary = payload
        elif event.type is ProgressEventType.ERROR:
            self.error = payload.message
