from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import User
from src.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, User)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email address."""
        result = await self.db.execute(
            select(User).filter(User.email == email)
        )
        return result.scalar_one_or_none()

    async def get_by_emails(self, emails: Sequence[str]) -> List[User]:
        if not emails:
            return []
        result = await self.db.execute(
            select(User).filter(User.email.in_(list(emails)))
        )
        return list(result.scalars().all())

    async def find_with_pagination(self, page: int, size: int) -> List[User]:
        """
        One page of users in a stable order (creation time, then id).

        Pages are 1-based.
        """
        result = await self.db.execute(
            select(User)
            .order_by(User.created_at, User.id)
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all())

    async def create_user(self, email: str) -> User:
        return await self.create({"email": email})

    async def bulk_create(self, emails: Sequence[str]) -> List[User]:
        """Create users for each email; duplicates within the input are collapsed."""
        users = [User(email=email) for email in dict.fromkeys(emails)]
        self.db.add_all(users)
        await self.db.flush()
        return users
