"""
User repository - SQL over the users table
"""

import logging
from typing import List, Optional

from fastapi import Depends

from database.connection import Database, get_database
from models.user import User

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, name, email, created_at, updated_at"

# users.id is SERIAL (int4)
MIN_USER_ID = -(2 ** 31)
MAX_USER_ID = 2 ** 31 - 1


def storable_id(user_id: int) -> bool:
    return MIN_USER_ID <= user_id <= MAX_USER_ID


class UserRepository:
    """
    Maps user CRUD intents to parameterized statements.

    Every method issues fresh statements against the store; nothing is cached
    between calls. StorageError from the database propagates unchanged.
    """

    def __init__(self, db: Database):
        self.db = db

    async def create(self, name: str, email: str) -> User:
        """
        Insert a user and return the row as stored

        The row is re-read by its generated id so timestamps come from the
        server's NOW(), not the application clock.
        """
        result = await self.db.query(
            """
            INSERT INTO users (name, email, created_at, updated_at)
            VALUES ($1, $2, NOW(), NOW())
            RETURNING id
            """,
            [name, email]
        )
        user_id = result.rows[0]["id"]
        logger.info(f"Created user {user_id}")
        return await self.find_by_id(user_id)

    async def find_all(self) -> List[User]:
        """All users, newest first"""
        result = await self.db.query(
            f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC"
        )
        return [User.from_row(row) for row in result.rows]

    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Row by id; ids outside int4 range cannot exist and are not queried"""
        if not storable_id(user_id):
            return None
        result = await self.db.query(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
            [user_id]
        )
        return User.from_row(result.rows[0]) if result.rows else None

    async def find_by_email(self, email: str) -> Optional[User]:
        """Exact match; callers normalize case before calling"""
        result = await self.db.query(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = $1",
            [email]
        )
        return User.from_row(result.rows[0]) if result.rows else None

    async def update(self, user_id: int, name: str, email: str) -> Optional[User]:
        """
        Replace name and email of a user

        Returns:
            The refreshed row, or None when no row has this id
        """
        if not storable_id(user_id):
            return None

        result = await self.db.query(
            """
            UPDATE users
            SET name = $1, email = $2, updated_at = NOW()
            WHERE id = $3
            """,
            [name, email, user_id]
        )
        if result.affected == 0:
            return None

        logger.info(f"Updated user {user_id}")
        return await self.find_by_id(user_id)

    async def delete(self, user_id: int) -> Optional[User]:
        """
        Delete a user

        Returns:
            The row as it was before deletion, or None if it did not exist
        """
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        result = await self.db.query("DELETE FROM users WHERE id = $1", [user_id])
        if result.affected == 0:
            return None

        logger.info(f"Deleted user {user_id}")
        return user

    async def count(self) -> int:
        result = await self.db.query("SELECT COUNT(*) AS total FROM users")
        return int(result.rows[0]["total"])


def get_user_repository(db: Database = Depends(get_database)) -> UserRepository:
    """FastAPI dependency building the repository for the current app"""
    return UserRepository(db)
