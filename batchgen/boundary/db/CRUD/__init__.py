"""CRUD singletons for jobs, generated content, and the catalog."""

from batchgen.boundary.db.CRUD.base_crud import BaseCRUD
from batchgen.boundary.db.CRUD.catalog_crud import CatalogCRUD, catalog_crud
from batchgen.boundary.db.CRUD.content_crud import ContentCRUD, InsertOutcome, content_crud
from batchgen.boundary.db.CRUD.job_crud import JobCRUD, job_crud

__all__ = [
    "BaseCRUD",
    "CatalogCRUD",
    "catalog_crud",
    "ContentCRUD",
    "InsertOutcome",
    "content_crud",
    "JobCRUD",
    "job_crud",
]
