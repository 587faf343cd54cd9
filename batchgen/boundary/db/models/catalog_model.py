"""
Read-only catalog ORM models.

Brand -> model -> generation hierarchy owned by the catalog. The orchestrator
only resolves selections and display names from these tables.

Dependencies: sqlalchemy, batchgen.boundary.db.base
System role: Catalog collaborator (read-only)
"""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.boundary.db.base import Base


class CarBrandModel(Base):
    """Car brand (e.g. BMW)."""

    __tablename__ = "car_brands"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)


class CarModelModel(Base):
    """Car model belonging to a brand (e.g. 3 Series)."""

    __tablename__ = "car_models"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    brand_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("car_brands.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)


class ModelGenerationModel(Base):
    """Model generation (e.g. E90, 2005-2011)."""

    __tablename__ = "model_generations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    car_model_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("car_models.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    generation_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
