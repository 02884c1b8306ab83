from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import SequenceConflictError
from src.models.newsletter_sequence import NewsletterSequence
from src.repositories.base import BaseRepository


class NewsletterSequenceRepository(BaseRepository[NewsletterSequence]):
    """Per-subject "today's topic" pointer."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, NewsletterSequence)

    async def get_by_subject(self, subject_id: int) -> Optional[NewsletterSequence]:
        result = await self.db.execute(
            select(NewsletterSequence)
            .filter(NewsletterSequence.subject_id == subject_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, subject_id: int) -> NewsletterSequence:
        """Existing pointer for the subject, or a new one starting at 1."""
        sequence = await self.get_by_subject(subject_id)
        if sequence is None:
            sequence = await self.create({"subject_id": subject_id, "current_sequence": 1})
        return sequence

    async def advance(self, subject_id: int, expected_sequence: int) -> int:
        """
        Move the pointer from `expected_sequence` to the next value.

        The UPDATE only matches while the stored value still equals
        `expected_sequence`; otherwise another broadcast already moved it and
        SequenceConflictError is raised.
        """
        next_sequence = expected_sequence + 1
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(NewsletterSequence)
            .where(
                NewsletterSequence.subject_id == subject_id,
                NewsletterSequence.current_sequence == expected_sequence,
            )
            .values(current_sequence=next_sequence, last_sent_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SequenceConflictError(
                f"Sequence for subject {subject_id} is no longer {expected_sequence}"
            )
        return next_sequence
