"""Tests for the SQL-backed user directory."""

import pytest
from sqlalchemy.exc import IntegrityError

from premium_billing.billing.directory import SqlUserDirectory

pytestmark = pytest.mark.integration


async def test_finds_user_ignoring_case_and_whitespace(session_factory, add_user):
    await add_user("user-a", "Jane.Doe@Example.com")
    directory = SqlUserDirectory(session_factory)

    assert await directory.find_user_id("  jane.doe@example.COM ") == "user-a"


async def test_unknown_email_returns_none(session_factory, add_user):
    await add_user("user-a", "a@example.com")
    directory = SqlUserDirectory(session_factory)

    assert await directory.find_user_id("b@example.com") is None


async def test_emails_differing_only_in_case_cannot_coexist(session_factory, add_user):
    """Each payer email resolves to at most one user."""
    await add_user("user-a", "a@example.com")

    with pytest.raises(IntegrityError):
        await add_user("user-b", "A@Example.com")

    assert await SqlUserDirectory(session_factory).find_user_id("A@EXAMPLE.COM") == "user-a"
