"""
OpenAI Batch API gateway.

Uploads JSONL request files, creates batches against the chat completions
endpoint, and reads status and result files back. Transient provider errors
are retried with exponential backoff.

Dependencies: openai, tenacity, batchgen.configs
System role: Production bulk-inference gateway
"""

import json
import logging
from typing import Awaitable, Callable, TypeVar

import openai
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from batchgen.boundary.gateway.base import (
    ACTIVE_BATCH_STATUSES,
    CHAT_COMPLETIONS_ENDPOINT,
    BatchRequest,
    BatchResultRow,
    BatchStatus,
    BulkInferenceGateway,
    RequestCounts,
)
from batchgen.configs.gateway import GatewaySettings
from batchgen.core.exceptions import GatewayError, GatewaySubmissionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def parse_result_line(line: str) -> BatchResultRow | None:
    """
    Parse one line of a batch output or error file.

    Args:
        line: Raw JSONL line

    Returns:
        BatchResultRow | None: Parsed row, or None for blank/unkeyed lines
    """
    line = line.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.warning(f"{__name__}:parse_result_line - Skipping malformed line")
        return None

    custom_id = payload.get("custom_id")
    if not custom_id:
        return None

    if payload.get("error"):
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        return BatchResultRow(custom_id=custom_id, error=message or "request failed")

    response = payload.get("response") or {}
    status_code = response.get("status_code", 200)
    body = response.get("body") or {}
    if status_code != 200:
        detail = (body.get("error") or {}).get("message") if isinstance(body, dict) else None
        return BatchResultRow(custom_id=custom_id, error=detail or f"HTTP {status_code}")

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return BatchResultRow(custom_id=custom_id, error="response has no message content")
    if not content:
        return BatchResultRow(custom_id=custom_id, error="empty response content")
    return BatchResultRow(custom_id=custom_id, content=content)


class OpenAIBatchGateway(BulkInferenceGateway):
    """
    Bulk-inference gateway backed by the OpenAI Batch API.

    Attributes:
        completion_window: Provider completion window (e.g. "24h")
    """

    def __init__(
        self,
        settings: GatewaySettings,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            settings: Gateway settings (API key, base URL, retry policy)
            client: Pre-built client, mainly for tests
        """
        self._settings = settings
        self.completion_window = settings.completion_window
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout_seconds,
            max_retries=0,
        )

    async def _call(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run a provider call with retry on transient errors."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self._settings.request_max_attempts),
            wait=wait_exponential_jitter(initial=1, max=30, jitter=2),
            before_sleep=lambda retry_state: logger.warning(
                f"{__name__}:{operation} - Retry {retry_state.attempt_number}/"
                f"{self._settings.request_max_attempts} after transient error"
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await func()
        raise RuntimeError("unreachable")

    async def submit_batch(
        self,
        phase: int,
        requests: list[BatchRequest],
        metadata: dict[str, str] | None = None,
    ) -> str:
        if not requests:
            raise GatewaySubmissionError("Cannot submit an empty batch", phase=phase)

        jsonl = "\n".join(request.to_jsonl() for request in requests).encode("utf-8")
        filename = f"phase{phase}-{requests[0].custom_id}-{len(requests)}.jsonl"

        try:
            uploaded = await self._call(
                "submit_batch",
                lambda: self._client.files.create(
                    file=(filename, jsonl, "application/jsonl"),
                    purpose="batch",
                ),
            )
            batch = await self._call(
                "submit_batch",
                lambda: self._client.batches.create(
                    input_file_id=uploaded.id,
                    endpoint=CHAT_COMPLETIONS_ENDPOINT,
                    completion_window=self.completion_window,
                    metadata=metadata or {},
                ),
            )
        except openai.OpenAIError as e:
            logger.error(
                f"{__name__}:submit_batch - Provider refused batch",
                extra={"phase": phase, "requests": len(requests), "error": str(e)},
            )
            raise GatewaySubmissionError(
                f"Phase {phase} batch submission failed: {e}", phase=phase
            ) from e

        logger.info(
            f"{__name__}:submit_batch - Batch created",
            extra={"phase": phase, "batch_ref": batch.id, "requests": len(requests)},
        )
        return batch.id

    async def get_status(self, ref: str) -> BatchStatus:
        try:
            batch = await self._call(
                "get_status", lambda: self._client.batches.retrieve(ref)
            )
        except openai.OpenAIError as e:
            raise GatewayError(f"Failed to read batch status: {e}", batch_ref=ref) from e

        counts = None
        if batch.request_counts is not None:
            counts = RequestCounts(
                completed=batch.request_counts.completed,
                failed=batch.request_counts.failed,
                total=batch.request_counts.total,
            )
        return BatchStatus(
            ref=batch.id,
            status=batch.status,
            request_counts=counts,
            output_file_id=batch.output_file_id,
            error_file_id=batch.error_file_id,
        )

    async def _read_file(self, file_id: str) -> list[BatchResultRow]:
        content = await self._call(
            "download_results", lambda: self._client.files.content(file_id)
        )
        rows: list[BatchResultRow] = []
        for line in content.text.splitlines():
            row = parse_result_line(line)
            if row is not None:
                rows.append(row)
        return rows

    async def download_results(self, ref: str) -> list[BatchResultRow]:
        status = await self.get_status(ref)
        rows: list[BatchResultRow] = []
        try:
            if status.output_file_id:
                rows.extend(await self._read_file(status.output_file_id))
            if status.error_file_id:
                rows.extend(await self._read_file(status.error_file_id))
        except openai.OpenAIError as e:
            raise GatewayError(f"Failed to download results: {e}", batch_ref=ref) from e

        logger.info(
            f"{__name__}:download_results - Downloaded batch results",
            extra={"batch_ref": ref, "rows": len(rows)},
        )
        return rows

    async def count_active_batches(self) -> int:
        try:
            page = await self._call(
                "count_active_batches", lambda: self._client.batches.list(limit=100)
            )
        except openai.OpenAIError as e:
            raise GatewayError(f"Failed to list batches: {e}") from e
        return sum(1 for batch in page.data if batch.status in ACTIVE_BATCH_STATUSES)
