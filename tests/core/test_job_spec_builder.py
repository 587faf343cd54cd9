"""
Test suite for job spec building and selection resolution.

Uses a mocked CatalogCRUD so resolution rules are tested without a database.

System role: Verification of validation and transitive selection
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.core.exceptions import ValidationError
from batchgen.core.job_spec_builder import (
    ContentType,
    Selection,
    TargetRef,
    build_job_specs,
    build_single_spec,
    resolve_selection,
    validate_parameters,
)


@pytest.fixture
def mock_session() -> AsyncSession:
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def mock_catalog() -> MagicMock:
    """Catalog with bmw -> (bmw-3 -> e90, f30), (bmw-x5 -> e70)."""
    catalog = MagicMock()
    models = {"bmw": [("bmw-3", "bmw"), ("bmw-x5", "bmw")]}
    generations = {"bmw-3": [("e90", "bmw-3"), ("f30", "bmw-3")], "bmw-x5": [("e70", "bmw-x5")]}
    lineage = {"e90": ("bmw", "bmw-3"), "f30": ("bmw", "bmw-3"), "e70": ("bmw", "bmw-x5")}

    async def models_for_brands(session, ids):
        return [pair for brand in ids for pair in models.get(brand, [])]

    async def generations_for_models(session, ids):
        return [pair for model in ids for pair in generations.get(model, [])]

    async def lineage_of(session, ids):
        return {g: lineage[g] for g in ids if g in lineage}

    catalog.models_for_brands = AsyncMock(side_effect=models_for_brands)
    catalog.generations_for_models = AsyncMock(side_effect=generations_for_models)
    catalog.lineage = AsyncMock(side_effect=lineage_of)
    return catalog


class TestValidateParameters:
    """Test suite for validate_parameters()."""

    def test_should_parse_content_type(self) -> None:
        assert validate_parameters("manual", 10, "de") is ContentType.MANUAL

    @pytest.mark.parametrize("count", [0, -1, 50001, True])
    def test_should_reject_count_out_of_range(self, count) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_parameters("fault", count, "en")
        assert exc_info.value.details["field"] == "count"

    def test_should_accept_count_bounds(self) -> None:
        validate_parameters("fault", 1, "en")
        validate_parameters("fault", 50000, "en")

    def test_should_reject_unknown_content_type(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_parameters("recipe", 10, "en")
        assert exc_info.value.details["field"] == "content_type"

    def test_should_reject_unsupported_language(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_parameters("fault", 10, "fr")
        assert exc_info.value.details["allowed"] == ["en", "de"]


class TestBuildSingleSpec:
    def test_should_build_spec_for_explicit_target(self) -> None:
        # Act
        spec = build_single_spec("bmw", "bmw-3", "e90", "fault", 100, "en")

        # Assert
        assert spec.target == TargetRef("bmw", "bmw-3", "e90")
        assert spec.content_type is ContentType.FAULT
        assert spec.count == 100

    def test_should_require_full_target(self) -> None:
        with pytest.raises(ValidationError):
            build_single_spec("bmw", "", "e90", "fault", 100)


class TestResolveSelection:
    """Test suite for resolve_selection()."""

    async def test_brand_should_expand_to_all_generations(self, mock_session, mock_catalog) -> None:
        # Act
        targets = await resolve_selection(mock_session, Selection(brand_ids=("bmw",)), mock_catalog)

        # Assert
        assert [t.generation_id for t in targets] == ["e90", "f30", "e70"]
        assert targets[2] == TargetRef("bmw", "bmw-x5", "e70")

    async def test_overlapping_levels_should_not_duplicate(self, mock_session, mock_catalog) -> None:
        # Arrange
        selection = Selection(brand_ids=("bmw",), model_ids=("bmw-3",), generation_ids=("f30",))

        # Act
        targets = await resolve_selection(mock_session, selection, mock_catalog)

        # Assert
        generation_ids = [t.generation_id for t in targets]
        assert sorted(generation_ids) == ["e70", "e90", "f30"]
        assert generation_ids[0] == "f30"

    async def test_unknown_generation_should_raise(self, mock_session, mock_catalog) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await resolve_selection(
                mock_session, Selection(generation_ids=("zz9",)), mock_catalog
            )
        assert exc_info.value.details["unknown"] == ["zz9"]


class TestBuildJobSpecs:
    async def test_should_build_one_spec_per_generation(self, mock_session, mock_catalog) -> None:
        # Act
        specs = await build_job_specs(
            mock_session, Selection(model_ids=("bmw-3",)), "manual", 50, "de", catalog=mock_catalog
        )

        # Assert
        assert len(specs) == 2
        assert {s.count for s in specs} == {50}
        assert all(s.content_type is ContentType.MANUAL for s in specs)

    async def test_empty_selection_should_raise(self, mock_session, mock_catalog) -> None:
        with pytest.raises(ValidationError, match="empty selection"):
            await build_job_specs(mock_session, Selection(), "fault", 10, catalog=mock_catalog)

    async def test_selection_resolving_to_nothing_should_raise(
        self, mock_session, mock_catalog
    ) -> None:
        with pytest.raises(ValidationError, match="empty selection"):
            await build_job_specs(
                mock_session, Selection(brand_ids=("tesla",)), "fault", 10, catalog=mock_catalog
            )

    async def test_invalid_parameters_should_fail_before_catalog_lookup(
        self, mock_session, mock_catalog
    ) -> None:
        with pytest.raises(ValidationError):
            await build_job_specs(
                mock_session, Selection(brand_ids=("bmw",)), "fault", 0, catalog=mock_catalog
            )
        mock_catalog.models_for_brands.assert_not_called()
