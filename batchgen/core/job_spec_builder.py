"""
Job spec builder.

Turns a target (single brand/model/generation triple, or a transitive
selection of brands, models and generations) plus content type, count and
language into independent JobSpec values, one per generation.

Dependencies: sqlalchemy, batchgen.boundary.db.CRUD.catalog_crud
System role: Validation and selection resolution in front of fan-out and streaming
"""

import enum
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.CRUD.catalog_crud import CatalogCRUD, catalog_crud
from batchgen.core.exceptions import ValidationError

DEFAULT_MAX_COUNT = 50000
DEFAULT_LANGUAGES: tuple[str, ...] = ("en", "de")


class ContentType(str, enum.Enum):
    FAULT = "fault"
    MANUAL = "manual"


@dataclass(frozen=True)
class TargetRef:
    """Opaque catalog reference of one generation and its parents."""

    brand_id: str
    model_id: str
    generation_id: str


@dataclass(frozen=True)
class JobSpec:
    """
    Immutable description of one job, never persisted as such.

    Attributes:
        target: Catalog reference
        content_type: fault or manual
        count: Items to generate
        language: Content language
    """

    target: TargetRef
    content_type: ContentType
    count: int
    language: str


@dataclass(frozen=True)
class Selection:
    """Ids picked at each catalog level; resolution is their union."""

    brand_ids: Sequence[str] = field(default_factory=tuple)
    model_ids: Sequence[str] = field(default_factory=tuple)
    generation_ids: Sequence[str] = field(default_factory=tuple)


def validate_parameters(
    content_type: str,
    count: int,
    language: str,
    max_count: int = DEFAULT_MAX_COUNT,
    languages: Iterable[str] = DEFAULT_LANGUAGES,
) -> ContentType:
    """
    Validate the parameters shared by every spec of a request.

    Returns:
        ContentType: Parsed content type

    Raises:
        ValidationError: Unknown content type, count out of range, or unsupported language
    """
    try:
        parsed = ContentType(content_type)
    except ValueError:
        raise ValidationError(
            f"Unsupported content type: {content_type}", field="content_type"
        ) from None

    if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= max_count:
        raise ValidationError(f"Count must be between 1 and {max_count}", field="count")

    allowed = tuple(languages)
    if language not in allowed:
        raise ValidationError(
            f"Unsupported language: {language}",
            field="language",
            details={"allowed": list(allowed)},
        )
    return parsed


def build_single_spec(
    brand_id: str,
    model_id: str,
    generation_id: str,
    content_type: str,
    count: int,
    language: str = "en",
    max_count: int = DEFAULT_MAX_COUNT,
    languages: Iterable[str] = DEFAULT_LANGUAGES,
) -> JobSpec:
    """Build the spec for one explicit (brand, model, generation) triple."""
    parsed = validate_parameters(content_type, count, language, max_count, languages)
    if not (brand_id and model_id and generation_id):
        raise ValidationError("brand, model and generation are required", field="target")
    return JobSpec(
        target=TargetRef(brand_id=brand_id, model_id=model_id, generation_id=generation_id),
        content_type=parsed,
        count=count,
        language=language,
    )


async def resolve_selection(
    session: AsyncSession,
    selection: Selection,
    catalog: CatalogCRUD = catalog_crud,
) -> list[TargetRef]:
    """
    Resolve a selection into distinct targets, in selection order.

    Explicit generations come first, then generations of selected models,
    then generations of every model of selected brands. One catalog query
    per level plus one lineage query.

    Raises:
        ValidationError: Explicit generation ids unknown to the catalog
    """
    brand_models = await catalog.models_for_brands(session, selection.brand_ids)
    model_ids = list(dict.fromkeys([*selection.model_ids, *(m for m, _ in brand_models)]))
    model_generations = await catalog.generations_for_models(session, model_ids)

    generation_ids = list(
        dict.fromkeys([*selection.generation_ids, *(g for g, _ in model_generations)])
    )
    lineage = await catalog.lineage(session, generation_ids)

    unknown = [g for g in selection.generation_ids if g not in lineage]
    if unknown:
        raise ValidationError(
            "Unknown generation ids in selection",
            field="generation_ids",
            details={"unknown": unknown[:20]},
        )

    return [
        TargetRef(brand_id=lineage[g][0], model_id=lineage[g][1], generation_id=g)
        for g in generation_ids
    ]


async def build_job_specs(
    session: AsyncSession,
    selection: Selection,
    content_type: str,
    count: int,
    language: str = "en",
    max_count: int = DEFAULT_MAX_COUNT,
    languages: Iterable[str] = DEFAULT_LANGUAGES,
    catalog: CatalogCRUD = catalog_crud,
) -> list[JobSpec]:
    """
    Build one spec per generation the selection resolves to.

    Parameters are validated before any catalog lookup.

    Raises:
        ValidationError: Invalid parameters or empty selection
    """
    parsed = validate_parameters(content_type, count, language, max_count, languages)
    if not (selection.brand_ids or selection.model_ids or selection.generation_ids):
        raise ValidationError("empty selection", field="selection")

    targets = await resolve_selection(session, selection, catalog)
    if not targets:
        raise ValidationError("empty selection", field="selection")

    return [
        JobSpec(target=target, content_type=parsed, count=count, language=language)
        for target in targets
    ]
