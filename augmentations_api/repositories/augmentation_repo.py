"""
Augmentation repository.

Provides async CRUD operations for augmentations over the request-scoped
SQLAlchemy AsyncSession.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import structlog
from injector import inject
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from augmentations_api.exceptions import DuplicateAugmentationError
from augmentations_api.models.augmentation import Augmentation, AugRequestModel

logger = structlog.get_logger(__name__)


class IAugmentationRepository(ABC):
    """Storage operations for augmentations."""

    @abstractmethod
    async def get_all(self) -> List[Augmentation]:
        ...

    @abstractmethod
    async def get(self, augmentation_id: int) -> Optional[Augmentation]:
        ...

    @abstractmethod
    async def exists(self, augmentation_id: int) -> bool:
        ...

    @abstractmethod
    async def name_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    async def create(self, model: AugRequestModel) -> Augmentation:
        ...

    @abstractmethod
    async def create_many(self, models: Iterable[AugRequestModel]) -> List[Augmentation]:
        ...

    @abstractmethod
    async def update(self, augmentation_id: int, model: AugRequestModel) -> bool:
        ...

    @abstractmethod
    async def delete(self, augmentation_id: int) -> bool:
        ...


class AugmentationRepository(IAugmentationRepository):
    """Repository for augmentation database operations."""

    @inject
    def __init__(self, session: AsyncSession):
        """
        Initialize augmentation repository.

        Args:
            session: Request-scoped database session
        """
        self.session = session

    async def get_all(self) -> List[Augmentation]:
        """Get every augmentation ordered by ID."""
        result = await self.session.execute(
            select(Augmentation).order_by(Augmentation.id)
        )
        augmentations = list(result.scalars().all())
        logger.debug("augmentations_listed", count=len(augmentations))
        return augmentations

    async def get(self, augmentation_id: int) -> Optional[Augmentation]:
        """
        Get augmentation by ID.

        Args:
            augmentation_id: Augmentation ID

        Returns:
            Augmentation or None if not found
        """
        augmentation = await self.session.get(Augmentation, augmentation_id)
        if augmentation is None:
            logger.debug("augmentation_not_found", augmentation_id=augmentation_id)
        return augmentation

    async def exists(self, augmentation_id: int) -> bool:
        """Check whether an augmentation with this ID exists."""
        result = await self.session.execute(
            select(func.count()).select_from(Augmentation).where(Augmentation.id == augmentation_id)
        )
        return result.scalar_one() > 0

    async def name_exists(self, name: str) -> bool:
        """Check whether an augmentation with this name exists (case-insensitive)."""
        result = await self.session.execute(
            select(func.count())
            .select_from(Augmentation)
            .where(func.lower(Augmentation.name) == name.strip().lower())
        )
        return result.scalar_one() > 0

    async def create(self, model: AugRequestModel) -> Augmentation:
        """
        Create an augmentation.

        Args:
            model: Augmentation data

        Returns:
            Created augmentation

        Raises:
            DuplicateAugmentationError: If the name is already taken
        """
        if await self.name_exists(model.name):
            raise DuplicateAugmentationError(model.name)

        augmentation = Augmentation(**model.model_dump())
        self.session.add(augmentation)
        await self._commit(model.name)

        logger.info("augmentation_created", augmentation_id=augmentation.id, name=augmentation.name)
        return augmentation

    async def create_many(self, models: Iterable[AugRequestModel]) -> List[Augmentation]:
        """
        Create several augmentations in one transaction.

        Either every augmentation is stored or none is.

        Raises:
            DuplicateAugmentationError: If any name is already taken or repeated
        """
        augmentations: List[Augmentation] = []
        seen = set()

        for model in models:
            key = model.name.lower()
            if key in seen or await self.name_exists(model.name):
                raise DuplicateAugmentationError(model.name)
            seen.add(key)
            augmentations.append(Augmentation(**model.model_dump()))

        self.session.add_all(augmentations)
        await self._commit(", ".join(a.name for a in augmentations))

        logger.info("augmentations_created", count=len(augmentations))
        return augmentations

    async def update(self, augmentation_id: int, model: AugRequestModel) -> bool:
        """
        Replace the fields of an augmentation.

        Returns:
            True if updated, False if the augmentation doesn't exist

        Raises:
            DuplicateAugmentationError: If the new name belongs to another augmentation
        """
        augmentation = await self.session.get(Augmentation, augmentation_id)
        if augmentation is None:
            return False

        if augmentation.name.lower() != model.name.lower() and await self.name_exists(model.name):
            raise DuplicateAugmentationError(model.name)

        for field, value in model.model_dump().items():
            setattr(augmentation, field, value)
        await self._commit(model.name)

        logger.info("augmentation_updated", augmentation_id=augmentation_id)
        return True

    async def delete(self, augmentation_id: int) -> bool:
        """
        Delete an augmentation.

        Returns:
            True if deleted, False if the augmentation doesn't exist
        """
        augmentation = await self.session.get(Augmentation, augmentation_id)
        if augmentation is None:
            return False

        await self.session.delete(augmentation)
        await self.session.commit()

        logger.info("augmentation_deleted", augmentation_id=augmentation_id)
        return True

    async def _commit(self, name: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("augmentation_name_conflict", name=name)
            raise DuplicateAugmentationError(name)
