"""ORM models for jobs, generated content, and the read-only catalog."""

from batchgen.boundary.db.models.catalog_model import (
    CarBrandModel,
    CarModelModel,
    ModelGenerationModel,
)
from batchgen.boundary.db.models.content_model import GeneratedContentModel
from batchgen.boundary.db.models.job_model import GenerationJobModel

__all__ = [
    "CarBrandModel",
    "CarModelModel",
    "GeneratedContentModel",
    "GenerationJobModel",
    "ModelGenerationModel",
]
