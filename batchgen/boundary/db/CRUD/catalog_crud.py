"""
Catalog read operations.

Batched IN (...) lookups over brands, models, and generations. Callers pass
the full set of distinct ids they need; each method issues one query.

Dependencies: sqlalchemy, batchgen.boundary.db.models.catalog_model
System role: Catalog collaborator for selection resolution and display names
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.boundary.db.models.catalog_model import (
    CarBrandModel,
    CarModelModel,
    ModelGenerationModel,
)


def _distinct(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


class CatalogCRUD:
    """Read-only batched lookups over the car catalog."""

    async def brand_names(self, session: AsyncSession, ids: Iterable[str]) -> dict[str, str]:
        """Map brand id -> name for the given ids."""
        wanted = _distinct(ids)
        if not wanted:
            return {}
        stmt = select(CarBrandModel.id, CarBrandModel.name).where(CarBrandModel.id.in_(wanted))
        result = await session.execute(stmt)
        return {row.id: row.name for row in result}

    async def model_names(self, session: AsyncSession, ids: Iterable[str]) -> dict[str, str]:
        """Map model id -> name for the given ids."""
        wanted = _distinct(ids)
        if not wanted:
            return {}
        stmt = select(CarModelModel.id, CarModelModel.name).where(CarModelModel.id.in_(wanted))
        result = await session.execute(stmt)
        return {row.id: row.name for row in result}

    async def generation_names(
        self, session: AsyncSession, ids: Iterable[str]
    ) -> dict[str, str]:
        """Map generation id -> name for the given ids."""
        wanted = _distinct(ids)
        if not wanted:
            return {}
        stmt = select(ModelGenerationModel.id, ModelGenerationModel.name).where(
            ModelGenerationModel.id.in_(wanted)
        )
        result = await session.execute(stmt)
        return {row.id: row.name for row in result}

    async def models_for_brands(
        self, session: AsyncSession, brand_ids: Iterable[str]
    ) -> list[tuple[str, str]]:
        """All (model_id, brand_id) pairs under the given brands."""
        wanted = _distinct(brand_ids)
        if not wanted:
            return []
        stmt = (
            select(CarModelModel.id, CarModelModel.brand_id)
            .where(CarModelModel.brand_id.in_(wanted))
            .order_by(CarModelModel.name)
        )
        result = await session.execute(stmt)
        return [(row.id, row.brand_id) for row in result]

    async def generations_for_models(
        self, session: AsyncSession, model_ids: Iterable[str]
    ) -> list[tuple[str, str]]:
        """All (generation_id, model_id) pairs under the given models."""
        wanted = _distinct(model_ids)
        if not wanted:
            return []
        stmt = (
            select(ModelGenerationModel.id, ModelGenerationModel.car_model_id)
            .where(ModelGenerationModel.car_model_id.in_(wanted))
            .order_by(ModelGenerationModel.name)
        )
        result = await session.execute(stmt)
        return [(row.id, row.car_model_id) for row in result]

    async def lineage(
        self, session: AsyncSession, generation_ids: Iterable[str]
    ) -> dict[str, tuple[str, str]]:
        """
        Resolve generations to their (brand_id, model_id) parents.

        One joined query for the whole id set.
        """
        wanted = _distinct(generation_ids)
        if not wanted:
            return {}
        stmt = (
            select(ModelGenerationModel.id, CarModelModel.id, CarModelModel.brand_id)
            .join(CarModelModel, CarModelModel.id == ModelGenerationModel.car_model_id)
            .where(ModelGenerationModel.id.in_(wanted))
        )
        result = await session.execute(stmt)
        return {gen_id: (brand_id, model_id) for gen_id, model_id, brand_id in result}


catalog_crud = CatalogCRUD()
