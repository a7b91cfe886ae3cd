"""
UserRepository statements against a recording stub database
"""

from datetime import datetime, timezone

import pytest

from database.connection import QueryResult
from services.users_service import UserRepository
from utils.errors import StorageCode, StorageError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def user_row(user_id=7, name="Ann", email="ann@ex.com"):
    return {"id": user_id, "name": name, "email": email, "created_at": NOW, "updated_at": NOW}


def normalize(sql: str) -> str:
    return " ".join(sql.split())


class StubDatabase:
    """Replays queued results and records every statement"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def query(self, sql, params=()):
        self.calls.append((normalize(sql), list(params)))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.asyncio
async def test_create_inserts_then_rereads():
    db = StubDatabase(QueryResult(rows=[{"id": 7}], affected=1), QueryResult(rows=[user_row()], affected=1))

    user = await UserRepository(db).create("Ann", "ann@ex.com")

    assert user.id == 7 and user.created_at == NOW
    insert_sql, insert_params = db.calls[0]
    assert insert_sql.startswith("INSERT INTO users (name, email, created_at, updated_at)")
    assert "VALUES ($1, $2, NOW(), NOW())" in insert_sql
    assert insert_params == ["Ann", "ann@ex.com"]
    assert db.calls[1] == ("SELECT id, name, email, created_at, updated_at FROM users WHERE id = $1", [7])


@pytest.mark.asyncio
async def test_find_all_orders_newest_first():
    db = StubDatabase(QueryResult(rows=[user_row(2), user_row(1)], affected=2))

    users = await UserRepository(db).find_all()

    assert [user.id for user in users] == [2, 1]
    assert db.calls[0][0].endswith("FROM users ORDER BY created_at DESC")
    assert db.calls[0][1] == []


@pytest.mark.asyncio
async def test_find_by_id_and_email_absent():
    db = StubDatabase(QueryResult(), QueryResult())
    repository = UserRepository(db)

    assert await repository.find_by_id(99) is None
    assert await repository.find_by_email("nobody@ex.com") is None
    assert db.calls[1][0].endswith("WHERE email = $1")
    assert db.calls[1][1] == ["nobody@ex.com"]


@pytest.mark.asyncio
async def test_update_without_match_returns_none_and_skips_reread():
    db = StubDatabase(QueryResult(affected=0))

    assert await UserRepository(db).update(5, "Ann", "ann@ex.com") is None
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "SET name = $1, email = $2, updated_at = NOW() WHERE id = $3" in sql
    assert params == ["Ann", "ann@ex.com", 5]


@pytest.mark.asyncio
async def test_update_returns_refreshed_row():
    db = StubDatabase(QueryResult(affected=1), QueryResult(rows=[user_row(5, name="Ann B")], affected=1))

    user = await UserRepository(db).update(5, "Ann B", "ann@ex.com")

    assert user.name == "Ann B"
    assert db.calls[1][1] == [5]


@pytest.mark.asyncio
async def test_delete_absent_issues_no_delete():
    db = StubDatabase(QueryResult())

    assert await UserRepository(db).delete(3) is None
    assert len(db.calls) == 1
    assert db.calls[0][0].startswith("SELECT")


@pytest.mark.asyncio
async def test_delete_returns_snapshot():
    db = StubDatabase(QueryResult(rows=[user_row(3)], affected=1), QueryResult(affected=1))

    user = await UserRepository(db).delete(3)

    assert user.id == 3
    assert db.calls[1] == ("DELETE FROM users WHERE id = $1", [3])


@pytest.mark.asyncio
async def test_count():
    db = StubDatabase(QueryResult(rows=[{"total": 4}], affected=1))

    assert await UserRepository(db).count() == 4
    assert db.calls[0][0] == "SELECT COUNT(*) AS total FROM users"


@pytest.mark.asyncio
async def test_storage_errors_propagate_unchanged():
    failure = StorageError(StorageCode.DUPLICATE_ENTRY, "duplicate key", sqlstate="23505")
    db = StubDatabase(failure)

    with pytest.raises(StorageError) as excinfo:
        await UserRepository(db).create("Ann", "ann@ex.com")

    assert excinfo.value is failure
    assert len(db.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", [2 ** 31, -(2 ** 31) - 1, 99999999999])
async def test_ids_outside_column_range_issue_no_statement(user_id):
    db = StubDatabase()
    repository = UserRepository(db)

    assert await repository.find_by_id(user_id) is None
    assert await repository.update(user_id, "Ann", "ann@ex.com") is None
    assert await repository.delete(user_id) is None
    assert db.calls == []
