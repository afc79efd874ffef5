"""Shared test fixtures."""

import os

# Point the app at a throwaway SQLite file before anything imports the engine
os.environ.setdefault("CB_DATABASE_URL", "sqlite+aiosqlite:///./test_coachbook.db")
os.environ.setdefault("CB_EMAIL_NOTIFICATIONS", "false")

from datetime import date, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402

from app.core.auth import create_access_token  # noqa: E402
from app.core.database import async_session_factory, engine  # noqa: E402
from app.models import (  # noqa: E402
    AccountId,
    Base,
    CoachAvailability,
    CoachProfile,
    MemberProfile,
    MemberProfileId,
    User,
    UserRole,
)
from app.services.bookings import create_booking  # noqa: E402
from app.services.capacity import day_of_week  # noqa: E402
from app.services.permissions import CallerContext  # noqa: E402


def next_weekday(dow: int, weeks_ahead: int = 1) -> date:
    """A date with the given day_of_week (0 = Sunday), at least a week from today."""
    today = date.today()
    return today + timedelta(days=(dow - day_of_week(today)) % 7 + 7 * weeks_ahead)


@pytest.fixture(autouse=True)
async def _fresh_schema():
    """Rebuild the schema for every test.

    The global engine is created at import time. When pytest-asyncio creates a new
    event loop for tests, any existing pooled connections are bound to the old loop
    and will fail with 'Future attached to a different loop'. Disposing before each
    test forces fresh connections in the current loop.
    """
    await engine.dispose()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def practice():
    """One admin, two coaches, five members and a member account with no profile.

    The first coach is available every day 09:00-17:00, two sessions per slot.
    Member profile ids are never equal to their own account ids.
    """
    async with async_session_factory() as db:
        admin = User(email="admin@test.io", name="Admin", role=UserRole.ADMIN)
        coach = User(email="maya@test.io", name="Maya Coach", role=UserRole.COACH)
        other_coach = User(email="sam@test.io", name="Sam Coach", role=UserRole.COACH)
        db.add_all([admin, coach, other_coach])
        await db.flush()
        db.add_all([CoachProfile(user_id=coach.id), CoachProfile(user_id=other_coach.id)])

        members = []
        for i in range(5):
            user = User(email=f"member{i}@test.io", name=f"Member {i}", role=UserRole.MEMBER)
            db.add(user)
            await db.flush()
            # The last member is coached by the other coach
            profile = MemberProfile(user_id=user.id, coach_id=coach.id if i < 4 else other_coach.id)
            db.add(profile)
            await db.flush()
            members.append(
                SimpleNamespace(
                    account_id=AccountId(user.id),
                    profile_id=MemberProfileId(profile.id),
                    name=user.name,
                    caller=CallerContext(AccountId(user.id), UserRole.MEMBER, MemberProfileId(profile.id)),
                    token=create_access_token(str(user.id)),
                )
            )

        orphan = User(email="orphan@test.io", role=UserRole.MEMBER)
        db.add(orphan)

        for dow in range(7):
            db.add(
                CoachAvailability(
                    coach_id=coach.id,
                    day_of_week=dow,
                    start_time="09:00",
                    end_time="17:00",
                    max_sessions_per_slot=2,
                )
            )
        await db.commit()

        return SimpleNamespace(
            admin_id=admin.id,
            coach_id=coach.id,
            other_coach_id=other_coach.id,
            orphan_id=AccountId(orphan.id),
            members=members,
            admin=CallerContext(AccountId(admin.id), UserRole.ADMIN),
            coach=CallerContext(AccountId(coach.id), UserRole.COACH),
            other_coach=CallerContext(AccountId(other_coach.id), UserRole.COACH),
            admin_token=create_access_token(str(admin.id)),
            coach_token=create_access_token(str(coach.id)),
            other_coach_token=create_access_token(str(other_coach.id)),
            orphan_token=create_access_token(str(orphan.id)),
        )


@pytest.fixture
def slot_day() -> date:
    return next_weekday(1)


@pytest.fixture
def book(practice, slot_day):
    """Book a slot with the first coach in a session of its own."""

    async def _book(member, at_time="10:00", on_date=None, duration=60, **kwargs):
        async with async_session_factory() as db:
            return await create_booking(
                db,
                coach_id=practice.coach_id,
                member_account_id=member.account_id,
                requested_date=on_date or slot_day,
                requested_time=at_time,
                duration=duration,
                **kwargs,
            )

    return _book
