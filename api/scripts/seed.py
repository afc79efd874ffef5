"""Seed the database with a small coaching practice for local development.

Run with: python -m scripts.seed
Creates an admin, two coaches with weekly availability, three members assigned to
them, and prints a bearer token for each account.
"""

import asyncio

from sqlalchemy import select

from app.core.auth import create_access_token
from app.core.database import async_session_factory, engine
from app.models import Base, CoachAvailability, CoachProfile, MemberProfile, User, UserRole

# day_of_week: 0 = Sunday ... 6 = Saturday
COACHES = [
    {
        "email": "maya@coachbook.io",
        "name": "Maya Ortiz",
        "specialization": "Strength and conditioning",
        "windows": [
            {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00", "max_sessions_per_slot": 2},
            {"day_of_week": 3, "start_time": "09:00", "end_time": "12:00", "max_sessions_per_slot": 2},
            {"day_of_week": 5, "start_time": "14:00", "end_time": "18:00", "max_sessions_per_slot": 1},
        ],
    },
    {
        "email": "sam@coachbook.io",
        "name": "Sam Kendrick",
        "specialization": "Career coaching",
        "windows": [
            {"day_of_week": 2, "start_time": "10:00", "end_time": "16:00", "max_sessions_per_slot": 1},
            {"day_of_week": 4, "start_time": "10:00", "end_time": "16:00", "max_sessions_per_slot": 1},
            {"day_of_week": 6, "start_time": "09:00", "end_time": "11:00", "max_sessions_per_slot": 3, "buffer_minutes": 0},
        ],
    },
]

MEMBERS = [
    {"email": "jo@example.com", "name": "Jo Baptiste", "coach": "maya@coachbook.io", "goals": "Run a half marathon"},
    {"email": "lee@example.com", "name": "Lee Chang", "coach": "maya@coachbook.io", "goals": "Deadlift bodyweight"},
    {"email": "ana@example.com", "name": "Ana Silva", "coach": "sam@coachbook.io", "goals": "Move into management"},
]


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        result = await db.execute(select(User).where(User.email == "admin@coachbook.io"))
        if result.scalar_one_or_none():
            print("Database already seeded - skipping.")
            return

        admin = User(email="admin@coachbook.io", name="Admin", role=UserRole.ADMIN)
        db.add(admin)
        await db.flush()
        accounts = [admin]

        coaches_by_email = {}
        total_windows = 0
        for c in COACHES:
            coach = User(email=c["email"], name=c["name"], role=UserRole.COACH)
            db.add(coach)
            await db.flush()
            db.add(CoachProfile(user_id=coach.id, specialization=c["specialization"]))
            for w in c["windows"]:
                db.add(CoachAvailability(coach_id=coach.id, **w))
                total_windows += 1
            coaches_by_email[coach.email] = coach
            accounts.append(coach)

        for m in MEMBERS:
            member = User(email=m["email"], name=m["name"], role=UserRole.MEMBER)
            db.add(member)
            await db.flush()
            db.add(MemberProfile(user_id=member.id, coach_id=coaches_by_email[m["coach"]].id, goals=m["goals"]))
            accounts.append(member)

        await db.commit()

        print(f"Created {len(COACHES)} coaches ({total_windows} availability windows) and {len(MEMBERS)} members")
        print()
        for account in accounts:
            print(f"{account.role:<7} {account.email:<24} {create_access_token(str(account.id))}")


if __name__ == "__main__":
    asyncio.run(seed())
