"""
Unit tests for the user store.

Tests cover:
- Users are stored together with their roles
- A failed registration leaves no partial state behind
"""

import pytest
from sqlalchemy import select

from augmentations_api.database import ApplicationDbContext
from augmentations_api.models.identity import Role, User
from augmentations_api.repositories.user_repo import UserStore


async def open_context(tmp_path) -> ApplicationDbContext:
    context = ApplicationDbContext(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    await context.create_schema()
    return context


async def role_names(context: ApplicationDbContext) -> list:
    async with context.create_session() as session:
        result = await session.execute(select(Role.normalized_name).order_by(Role.normalized_name))
        return list(result.scalars())


class TestCreateUser:
    """Tests for UserStore.create_user."""

    @pytest.mark.asyncio
    async def test_user_created_with_roles(self, tmp_path):
        """Test the user and their roles are stored in one go."""
        context = await open_context(tmp_path)
        try:
            async with context.create_session() as session:
                user = await UserStore(session).create_user(
                    "JCDenton", "hash", role_names=["User", "Agent"]
                )

            async with context.create_session() as session:
                stored = await UserStore(session).get_user_by_name("jcdenton")
                assert stored.id == user.id
                assert sorted(await UserStore(session).get_user_roles(stored)) == ["Agent", "User"]
        finally:
            await context.aclose()

    @pytest.mark.asyncio
    async def test_existing_roles_are_reused(self, tmp_path):
        """Test a role shared by two users is stored once."""
        context = await open_context(tmp_path)
        try:
            async with context.create_session() as session:
                await UserStore(session).create_user("JCDenton", "hash", role_names=["User"])
            async with context.create_session() as session:
                await UserStore(session).create_user("PaulDenton", "hash", role_names=["user"])

            assert await role_names(context) == ["USER"]
        finally:
            await context.aclose()

    @pytest.mark.asyncio
    async def test_duplicate_user_leaves_no_new_roles(self, tmp_path):
        """Test a rejected user doesn't leave the roles created for it."""
        context = await open_context(tmp_path)
        try:
            async with context.create_session() as session:
                await UserStore(session).create_user("JCDenton", "hash", role_names=["User"])

            async with context.create_session() as session:
                with pytest.raises(ValueError):
                    await UserStore(session).create_user(
                        "jcdenton", "hash", role_names=["User", "Admin"]
                    )

            assert await role_names(context) == ["USER"]
            async with context.create_session() as session:
                result = await session.execute(select(User))
                assert len(result.scalars().all()) == 1
        finally:
            await context.aclose()
