import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from progression.database import get_session
from progression.main import app
from progression.models.match import Match
from progression.models.team import Team
from progression.models.tournament import Tournament

TEST_DATABASE_URL = "sqlite:///:memory:"

MAPS = ["ascent", "bind", "haven", "split", "lotus", "sunset", "icebox"]

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables dropped after every test so tests never see each other's rows
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from progression.models.veto import VetoAction, VetoSession  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_tournament(session: Session):
    """Factory: tournament with *team_count* seeded teams ("Team 1" has seed 1)."""

    def _make(team_count: int = 4, map_pool: Optional[List[str]] = None, **fields) -> Tournament:
        tournament = Tournament(
            name=fields.pop("name", "Test Cup"),
            map_pool=list(MAPS) if map_pool is None else map_pool,
            **fields,
        )
        session.add(tournament)
        session.commit()
        session.refresh(tournament)

        for seed in range(1, team_count + 1):
            session.add(Team(tournament_id=tournament.id, name=f"Team {seed}", seed=seed))
        session.commit()
        session.refresh(tournament)
        return tournament

    return _make


@pytest.fixture
def ready_match(session: Session, make_tournament):
    """A round-1 match between two teams of a tournament with the default map pool."""
    tournament = make_tournament(2)
    teams = sorted(tournament.teams, key=lambda t: t.seed)
    match = Match(
        tournament_id=tournament.id,
        round_number=1,
        match_number=1,
        team_a_id=teams[0].id,
        team_b_id=teams[1].id,
    )
    session.add(match)
    session.commit()
    session.refresh(match)
    return match
