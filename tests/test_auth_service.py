"""Role lookups behind the admin dependency."""

import pytest

from lifehub.auth.service import has_role, is_admin
from lifehub.db.models import UserRole
from tests.conftest import ADMIN, REFERRER, seed_admin


@pytest.mark.asyncio
async def test_admin_role_is_detected(db_session):
    await seed_admin(db_session)
    assert await is_admin(db_session, ADMIN) is True
    assert await is_admin(db_session, REFERRER) is False


@pytest.mark.asyncio
async def test_other_roles_do_not_grant_admin(db_session):
    db_session.add(UserRole(user_id=REFERRER, role="support"))
    await db_session.flush()

    assert await has_role(db_session, REFERRER, "support") is True
    assert await is_admin(db_session, REFERRER) is False
