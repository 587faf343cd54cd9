"""
Bulk-inference gateway contract.

The orchestrator only submits work, tracks the returned batch reference, and
reads status and results back. Implementations wrap a concrete provider.

Dependencies: None
System role: Interface between the pipeline driver and the batch provider
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

SUCCESS_STATUSES: frozenset[str] = frozenset({"completed"})
FAILURE_STATUSES: frozenset[str] = frozenset({"failed", "expired", "cancelled"})
ACTIVE_BATCH_STATUSES: frozenset[str] = frozenset({"validating", "in_progress", "finalizing"})

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"


@dataclass(frozen=True)
class RequestCounts:
    """Per-batch request tally reported by the provider."""

    completed: int = 0
    failed: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"completed": self.completed, "failed": self.failed, "total": self.total}


@dataclass(frozen=True)
class BatchStatus:
    """
    Snapshot of one external batch.

    Attributes:
        ref: Provider batch id
        status: Raw provider status string
        request_counts: Tally, when the provider reports one
        output_file_id: Result file, set once the batch completes
        error_file_id: Per-request error file, if any requests failed
    """

    ref: str
    status: str
    request_counts: RequestCounts | None = None
    output_file_id: str | None = None
    error_file_id: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.is_failure


@dataclass(frozen=True)
class BatchRequest:
    """One chat-completion request inside a batch, keyed by its correlation key."""

    custom_id: str
    body: dict[str, Any] = field(default_factory=dict)

    def to_jsonl(self, endpoint: str = CHAT_COMPLETIONS_ENDPOINT) -> str:
        return json.dumps(
            {"custom_id": self.custom_id, "method": "POST", "url": endpoint, "body": self.body},
            ensure_ascii=False,
        )


@dataclass(frozen=True)
class BatchResultRow:
    """
    One line of a batch result.

    Exactly one of content or error is set.
    """

    custom_id: str
    content: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


class BulkInferenceGateway(ABC):
    """Abstract two-phase bulk-inference provider."""

    @abstractmethod
    async def submit_batch(
        self,
        phase: int,
        requests: list[BatchRequest],
        metadata: dict[str, str] | None = None,
    ) -> str:
        """
        Upload requests and create a batch.

        Returns:
            str: Provider batch reference

        Raises:
            GatewaySubmissionError: Provider refused the batch
        """

    @abstractmethod
    async def get_status(self, ref: str) -> BatchStatus:
        """Fetch the current status of a batch."""

    @abstractmethod
    async def download_results(self, ref: str) -> list[BatchResultRow]:
        """Download output and error rows of a terminal batch."""

    @abstractmethod
    async def count_active_batches(self) -> int:
        """Number of batches currently validating, in progress, or finalizing."""
