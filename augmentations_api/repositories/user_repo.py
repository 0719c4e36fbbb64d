"""
User store for identity operations.

Provides async user and role persistence over the request-scoped
SQLAlchemy AsyncSession.
"""

from typing import List, Optional, Sequence
from uuid import UUID

import structlog
from injector import inject
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from augmentations_api.models.identity import Role, User

logger = structlog.get_logger(__name__)


def normalize_name(name: str) -> str:
    """Normalize a user or role name for case-insensitive lookups."""
    return name.strip().upper()


class UserStore:
    """Repository for user and role database operations."""

    @inject
    def __init__(self, session: AsyncSession):
        """
        Initialize user store.

        Args:
            session: Request-scoped database session
        """
        self.session = session

    async def create_user(
        self,
        user_name: str,
        password_hash: str,
        role_names: Sequence[str] = (),
    ) -> User:
        """
        Create a new user together with their roles in one transaction.

        Roles that don't exist yet are created. Either the user and all of
        their roles are stored, or nothing is.

        Args:
            user_name: User name as entered
            password_hash: Hashed password
            role_names: Roles the user starts with

        Returns:
            Created user

        Raises:
            ValueError: If the user name already exists
        """
        try:
            roles = [await self._get_or_add_role(name) for name in dict.fromkeys(role_names)]
            user = User(
                user_name=user_name,
                normalized_user_name=normalize_name(user_name),
                password_hash=password_hash,
                roles=roles,
            )
            self.session.add(user)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("user_name_already_exists", user_name=user_name)
            raise ValueError(f"Username '{user_name}' is already taken")
        except Exception:
            await self.session.rollback()
            raise

        logger.info("user_created", user_id=str(user.id), user_name=user_name, roles=list(role_names))
        return user

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User or None if not found
        """
        user = await self.session.get(User, user_id)
        if user is None:
            logger.debug("user_not_found", user_id=str(user_id))
        return user

    async def get_user_by_name(self, user_name: str) -> Optional[User]:
        """
        Get user by name (case-insensitive).

        Args:
            user_name: User name

        Returns:
            User or None if not found
        """
        result = await self.session.execute(
            select(User).where(User.normalized_user_name == normalize_name(user_name))
        )
        user = result.scalar_one_or_none()
        if user is None:
            logger.debug("user_not_found", user_name=user_name)
        return user

    async def get_user_roles(self, user: User) -> List[str]:
        """
        Get the role names of a user.

        Args:
            user: User entity

        Returns:
            List of role names
        """
        return [role.name for role in user.roles]

    async def _get_or_add_role(self, role_name: str) -> Role:
        """Find a role by name, or add a new one to the session (uncommitted)."""
        normalized = normalize_name(role_name)
        result = await self.session.execute(
            select(Role).where(Role.normalized_name == normalized)
        )
        role = result.scalar_one_or_none()
        if role is None:
            role = Role(name=role_name, normalized_name=normalized)
            self.session.add(role)
            logger.info("role_created", role=role_name)
        return role
