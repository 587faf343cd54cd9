"""Application services."""

from batchgen.application.services.generation_service import GenerationService
from batchgen.application.services.job_service import JobService

__all__ = ["GenerationService", "JobService"]
