"""
Phase-1 / phase-2 merge.

Joins content rows and metadata rows by correlation key. A mismatch only
fails the affected row; the caller decides whether the whole job failed
(every row failed).

Dependencies: batchgen.boundary.gateway.base, batchgen.core.prompt_templates
System role: Produces content store rows at phase2_complete -> completed
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from batchgen.boundary.gateway.base import BatchResultRow
from batchgen.core.exceptions import MergeInconsistencyError
from batchgen.core.prompt_templates import (
    build_description,
    build_slug,
    build_title,
    correlation_key,
    parse_metadata,
)

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    """
    Result of merging both phases for one job.

    Attributes:
        rows: Content store rows for keys that merged cleanly
        failures: Key -> reason for every row that did not
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def all_failed(self) -> bool:
        return not self.rows


def index_rows(rows: Iterable[BatchResultRow]) -> tuple[dict[str, BatchResultRow], set[str]]:
    """
    Index result rows by custom id.

    Returns:
        (rows by key, keys that appeared more than once)
    """
    indexed: dict[str, BatchResultRow] = {}
    duplicates: set[str] = set()
    for row in rows:
        if row.custom_id in indexed:
            duplicates.add(row.custom_id)
        indexed[row.custom_id] = row
    return indexed, duplicates


def _metadata_for(key: str, row: BatchResultRow | None, duplicated: bool) -> dict:
    """Validate the phase-2 row for key, raising MergeInconsistencyError on mismatch."""
    if duplicated:
        raise MergeInconsistencyError("multiple metadata rows for key", key)
    if row is None:
        raise MergeInconsistencyError("missing metadata row", key)
    if not row.ok:
        raise MergeInconsistencyError(f"metadata request failed: {row.error}", key)
    try:
        return parse_metadata(row.content or "")
    except (json.JSONDecodeError, ValueError) as e:
        raise MergeInconsistencyError(f"invalid metadata JSON: {e}", key) from e


def merge_phase_outputs(
    count: int,
    phase1_rows: Iterable[BatchResultRow],
    phase2_rows: Iterable[BatchResultRow],
    question_of: Callable[[int], str],
    job_token: str,
    generation_id: str,
    content_type: str,
    language: str,
) -> MergeOutcome:
    """
    Merge both phases row by row.

    Args:
        count: Number of items the job requested
        phase1_rows: Content batch results
        phase2_rows: Metadata batch results
        question_of: Re-derives the question for a 0-based row index
        job_token: Short job-specific token used in slugs
        generation_id: Catalog generation of the job
        content_type: "fault" or "manual"
        language: Content language

    Returns:
        MergeOutcome: Insertable rows plus per-key failure reasons
    """
    content_by_key, _ = index_rows(phase1_rows)
    metadata_by_key, duplicated = index_rows(phase2_rows)
    outcome = MergeOutcome()

    for index in range(count):
        key = correlation_key(index)
        content_row = content_by_key.get(key)
        if content_row is None:
            outcome.failures[key] = "missing content row"
            continue
        if not content_row.ok:
            outcome.failures[key] = f"content request failed: {content_row.error}"
            continue

        try:
            metadata = _metadata_for(key, metadata_by_key.get(key), key in duplicated)
        except MergeInconsistencyError as e:
            logger.error(
                f"{__name__}:merge_phase_outputs - {e.message}",
                extra={"correlation_key": key, "generation_id": generation_id},
            )
            outcome.failures[key] = e.message
            continue

        question = question_of(index)
        answer = (content_row.content or "").strip()
        title = build_title(question)
        metadata.setdefault("meta_title", title)
        outcome.rows.append(
            {
                "correlation_key": key,
                "generation_id": generation_id,
                "content_type": content_type,
                "language": language,
                "slug": build_slug(question, job_token, index),
                "title": title,
                "description": build_description(metadata, answer, question),
                "body": answer,
                "content_metadata": metadata,
                "status": "live",
            }
        )

    stray = set(metadata_by_key) - set(content_by_key)
    if stray:
        logger.error(
            f"{__name__}:merge_phase_outputs - Metadata rows without content rows",
            extra={"generation_id": generation_id, "stray_keys": sorted(stray)[:10]},
        )

    return outcome
