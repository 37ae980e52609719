from __future__ import annotations

from types import SimpleNamespace

import pytest

from samvaad.database import DatabaseManager
from samvaad.errors import OfflineError, ProfileStoreError
from samvaad.models.profile import Profile
from samvaad.repositories.profile_repository import ProfileRepository


class FakeQuery:
    """Minimal PostgREST request builder: records the chain, returns canned data."""

    def __init__(self, client: "FakeClient", table: str) -> None:
        self.client = client
        self.table = table
        self.chain = []

    def __getattr__(self, name):
        def _step(*args, **kwargs):
            self.chain.append((name, args, kwargs))
            return self
        return _step

    async def execute(self):
        self.client.executed.append((self.table, self.chain))
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.data)


class FakeClient:
    def __init__(self, data=None, error=None) -> None:
        self.data = data
        self.error = error
        self.executed = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


ROW = {
    "id": "u1",
    "email": "asha@example.com",
    "name": "Asha",
    "role": "deaf",
    "roll_number": 482913,
    "email_confirmed": False,
    "confirmation_sent_at": "2024-05-01T10:00:00Z",
}


def make_repo(sqlite_conn, logger, client) -> ProfileRepository:
    db = DatabaseManager(sqlite_conn=sqlite_conn, logger=logger, supabase=client)
    return ProfileRepository(db=db, logger=logger, table="users")


@pytest.fixture
def conn(local_db):
    return local_db.sqlite


async def test_get_by_id_normalizes_list_response(conn, logger):
    client = FakeClient(data=[ROW])
    repo = make_repo(conn, logger, client)

    profile = await repo.get_by_id("u1")

    assert profile.roll_number == "482913"
    table, chain = client.executed[0]
    assert table == "users"
    assert ("eq", ("id", "u1"), {}) in chain


async def test_get_by_id_absent(conn, logger):
    repo = make_repo(conn, logger, FakeClient(data=[]))

    assert await repo.get_by_id("u1") is None


async def test_upsert_conflicts_on_id(conn, logger):
    client = FakeClient(data=[ROW])
    repo = make_repo(conn, logger, client)

    await repo.upsert(Profile(**ROW))

    _, chain = client.executed[0]
    name, args, kwargs = chain[0]
    assert name == "upsert"
    assert kwargs == {"on_conflict": "id"}
    assert args[0]["roll_number"] == "482913"


async def test_roll_number_exists(conn, logger):
    assert await make_repo(conn, logger, FakeClient(data=[{"id": "u1"}])).roll_number_exists("482913")
    assert not await make_repo(conn, logger, FakeClient(data=[])).roll_number_exists("482913")


async def test_client_failure_is_wrapped(conn, logger):
    boom = ConnectionError("reset by peer")
    repo = make_repo(conn, logger, FakeClient(error=boom))

    with pytest.raises(ProfileStoreError) as info:
        await repo.get_by_id("u1")
    assert info.value.original_error is boom


async def test_offline_repository_raises_offline_error(conn, logger):
    repo = make_repo(conn, logger, None)

    with pytest.raises(OfflineError):
        await repo.delete("u1")
