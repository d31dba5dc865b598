"""Schedule definition repository"""

from typing import List, Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from applyflow.models.schedule_definition import ScheduleDefinition
from applyflow.core.logging import get_logger

logger = get_logger(__name__)


class ScheduleRepository:
    """Repository for persisted schedule overrides"""

    def __init__(self, db: AsyncSession):
        """
        Initialize schedule repository

        Args:
            db: Database session
        """
        self.db = db

    async def get_all(self) -> List[ScheduleDefinition]:
        """Get every persisted schedule, ordered by job type"""
        stmt = select(ScheduleDefinition).order_by(ScheduleDefinition.job_type)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, job_type: str) -> Optional[ScheduleDefinition]:
        return await self.db.get(ScheduleDefinition, job_type)

    async def upsert(self, job_type: str, values: Dict[str, Any]) -> ScheduleDefinition:
        """
        Create or update the schedule for a job type

        Args:
            job_type: Job type the schedule enqueues
            values: Column values to write

        Returns:
            The stored definition
        """
        definition = await self.get(job_type)
        if definition is None:
            definition = ScheduleDefinition(job_type=job_type, **values)
            self.db.add(definition)
        else:
            for field, value in values.items():
                setattr(definition, field, value)

        await self.db.commit()
        await self.db.refresh(definition)

        logger.info(f"Saved schedule for {job_type}")
        return definition
