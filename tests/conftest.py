"""Shared fixtures: a throwaway SQLite database and a scripted extractor."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from feedback_synth.core.database import build_engine, build_session_factory, init_db
from feedback_synth.services.synthesizer import SynthesisConfig, SynthesisPipeline

from factories import DIMS, FakeExtractor


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'synth.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


# =============================================================================
# SYNTHESIS
# =============================================================================


@pytest.fixture
def config() -> SynthesisConfig:
    return SynthesisConfig(
        auto_merge_threshold=0.15,
        embedding_dimensions=DIMS,
        extractor_timeout_seconds=1.0,
    )


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def pipeline(session_factory, extractor, config) -> SynthesisPipeline:
    return SynthesisPipeline(session_factory, extractor, config)
