"""
Shared test fixtures and configuration for entire test suite.

Provides: file-backed SQLite async engines, session factories, settings,
a scripted in-memory gateway, and catalog seeding helpers
Dependencies: pytest, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import json
import uuid
from typing import Iterable

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from batchgen.boundary.db.base import Base
from batchgen.boundary.db.connection import session_factory_for
from batchgen.boundary.db.models import CarBrandModel, CarModelModel, ModelGenerationModel
from batchgen.boundary.gateway.base import (
    BatchRequest,
    BatchResultRow,
    BatchStatus,
    BulkInferenceGateway,
    RequestCounts,
)
from batchgen.configs.settings import Settings
from batchgen.core.exceptions import GatewayError


def make_engine(url: str) -> AsyncEngine:
    """
    Create a SQLite async engine with working savepoints.

    pysqlite's implicit transaction handling breaks SAVEPOINT; the driver's
    own BEGIN is disabled and BEGIN IMMEDIATE is emitted instead, so
    concurrent writers queue on the database lock.
    """
    engine = create_async_engine(url, connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    """File-backed SQLite engine with all tables created."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'batchgen.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def empty_engine(tmp_path) -> AsyncEngine:
    """File-backed SQLite engine without any tables."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'unprovisioned.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return session_factory_for(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    """One session for store-level tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast, deterministic tests."""
    base = Settings()
    return base.model_copy(
        update={
            "orchestrator": base.orchestrator.model_copy(
                update={
                    "phase_poll_interval_seconds": 0.0,
                    "insert_chunk_size": 25,
                    "trigger_worker_on_submit": False,
                    "poller_interval_seconds": 0.05,
                    "poller_refresh_phase_status": True,
                }
            ),
            "gateway": base.gateway.model_copy(update={"max_active_batches": 50}),
        }
    )


class FakeGateway(BulkInferenceGateway):
    """
    Scripted in-memory batch provider.

    Batches report in_progress for polls_until_done - 1 polls, then
    final_status. Phase-1 rows listed in failing_content_keys come back as
    errors; phase-2 rows listed in bad_metadata_keys come back as non-JSON.
    """

    def __init__(
        self,
        polls_until_done: int = 2,
        final_status: str = "completed",
        failing_content_keys: Iterable[str] = (),
        bad_metadata_keys: Iterable[str] = (),
        active_batches: int = 0,
    ) -> None:
        self.polls_until_done = polls_until_done
        self.final_status = final_status
        self.failing_content_keys = set(failing_content_keys)
        self.bad_metadata_keys = set(bad_metadata_keys)
        self.active_batches = active_batches
        self.batches: dict[str, dict] = {}
        self.submissions: list[tuple[int, str, int]] = []
        self.status_error: Exception | None = None
        self.submit_error: GatewayError | None = None

    async def submit_batch(
        self,
        phase: int,
        requests: list[BatchRequest],
        metadata: dict[str, str] | None = None,
    ) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        ref = f"batch_{phase}_{uuid.uuid4().hex[:8]}"
        self.batches[ref] = {"phase": phase, "requests": list(requests), "polls": 0}
        self.submissions.append((phase, ref, len(requests)))
        return ref

    def _failed_keys(self, ref: str) -> set[str]:
        batch = self.batches[ref]
        if batch["phase"] != 1:
            return set()
        return {r.custom_id for r in batch["requests"]} & self.failing_content_keys

    async def get_status(self, ref: str) -> BatchStatus:
        if self.status_error is not None:
            raise self.status_error
        batch = self.batches[ref]
        batch["polls"] += 1
        total = len(batch["requests"])
        if batch["polls"] < self.polls_until_done:
            return BatchStatus(ref, "in_progress", RequestCounts(completed=0, failed=0, total=total))
        failed = len(self._failed_keys(ref))
        return BatchStatus(
            ref,
            self.final_status,
            RequestCounts(completed=total - failed, failed=failed, total=total),
            output_file_id=f"file_{ref}",
        )

    async def download_results(self, ref: str) -> list[BatchResultRow]:
        batch = self.batches[ref]
        failed = self._failed_keys(ref)
        rows = []
        for request in batch["requests"]:
            key = request.custom_id
            if key in failed:
                rows.append(BatchResultRow(key, error="model error"))
            elif batch["phase"] == 1:
                rows.append(BatchResultRow(key, content=f"Answer for {key}\n\nMore detail."))
            elif key in self.bad_metadata_keys:
                rows.append(BatchResultRow(key, content="not json"))
            else:
                rows.append(
                    BatchResultRow(
                        key,
                        content=json.dumps({"severity": "low", "meta_description": f"About {key}"}),
                    )
                )
        return rows

    async def count_active_batches(self) -> int:
        return self.active_batches


@pytest.fixture
def make_gateway():
    """Factory for scripted gateways with per-test behaviour."""
    return FakeGateway


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


async def seed_catalog(session: AsyncSession) -> None:
    """
    Two brands: bmw (3 series: e90, f30; x5: e70) and audi (a4: b8).
    """
    session.add_all(
        [
            CarBrandModel(id="bmw", name="BMW", slug="bmw"),
            CarBrandModel(id="audi", name="Audi", slug="audi"),
            CarModelModel(id="bmw-3", brand_id="bmw", name="3 Series", slug="3-series"),
            CarModelModel(id="bmw-x5", brand_id="bmw", name="X5", slug="x5"),
            CarModelModel(id="audi-a4", brand_id="audi", name="A4", slug="a4"),
            ModelGenerationModel(
                id="e90", car_model_id="bmw-3", name="E90", slug="e90", generation_code="E90"
            ),
            ModelGenerationModel(id="f30", car_model_id="bmw-3", name="F30", slug="f30"),
            ModelGenerationModel(id="e70", car_model_id="bmw-x5", name="E70", slug="e70"),
            ModelGenerationModel(id="b8", car_model_id="audi-a4", name="B8", slug="b8"),
        ]
    )
    await session.commit()


@pytest.fixture
async def seeded_session_factory(session_factory) -> async_sessionmaker[AsyncSession]:
    async with session_factory() as session:
        await seed_catalog(session)
    return session_factory
