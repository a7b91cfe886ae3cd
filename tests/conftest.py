"""
pytest configuration and fixtures for the Users API test suite
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from app import create_app  # noqa: E402
from models.user import User  # noqa: E402
from services.users_service import get_user_repository  # noqa: E402
from utils.errors import StorageCode, StorageError  # noqa: E402


class InMemoryUserRepository:
    """Repository double that behaves like the users table, unique index included"""

    def __init__(self):
        self.rows: Dict[int, User] = {}
        self.next_id = 1
        self.clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> datetime:
        self.clock += timedelta(seconds=1)
        return self.clock

    def _enforce_unique_email(self, email: str, owner_id: Optional[int] = None) -> None:
        for row in self.rows.values():
            if row.email == email and row.id != owner_id:
                raise StorageError(
                    StorageCode.DUPLICATE_ENTRY,
                    'duplicate key value violates unique constraint "users_email_unique"',
                    sqlstate="23505"
                )

    async def create(self, name: str, email: str) -> User:
        self._enforce_unique_email(email)
        now = self._now()
        user = User(id=self.next_id, name=name, email=email, created_at=now, updated_at=now)
        self.rows[user.id] = user
        self.next_id += 1
        return user.model_copy()

    async def find_all(self) -> List[User]:
        return sorted(
            (row.model_copy() for row in self.rows.values()),
            key=lambda row: row.created_at,
            reverse=True
        )

    async def find_by_id(self, user_id: int) -> Optional[User]:
        row = self.rows.get(user_id)
        return row.model_copy() if row else None

    async def find_by_email(self, email: str) -> Optional[User]:
        for row in self.rows.values():
            if row.email == email:
                return row.model_copy()
        return None

    async def update(self, user_id: int, name: str, email: str) -> Optional[User]:
        if user_id not in self.rows:
            return None
        self._enforce_unique_email(email, owner_id=user_id)
        self.rows[user_id] = self.rows[user_id].model_copy(
            update={"name": name, "email": email, "updated_at": self._now()}
        )
        return self.rows[user_id].model_copy()

    async def delete(self, user_id: int) -> Optional[User]:
        return self.rows.pop(user_id, None)

    async def count(self) -> int:
        return len(self.rows)


@pytest.fixture
def repository():
    return InMemoryUserRepository()


@pytest.fixture
def app(repository):
    application = create_app()
    application.dependency_overrides[get_user_repository] = lambda: repository
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    """In-process HTTP client (lifespan is not run, so no database is needed)"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
