"""Caller identity and ownership rules.

A CallerContext is built once per request from the authenticated account. For
members it also carries the resolved member profile id, because bookings and
sessions reference members by profile id rather than account id. Every ownership
check below is a pure function of that context and the record's foreign keys.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.member import AccountId, MemberProfile, MemberProfileId, User, UserRole
from app.services.errors import NotFound


@dataclass(frozen=True)
class CallerContext:
    account_id: AccountId
    role: UserRole
    # None for coaches/admins, and for member accounts with no profile yet
    member_profile_id: MemberProfileId | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def resolve_member_profile(db: AsyncSession, account_id: AccountId) -> MemberProfileId:
    """Map a member's account id to its profile id. Raises NotFound if there is no profile."""
    result = await db.execute(select(MemberProfile.id).where(MemberProfile.user_id == account_id))
    profile_id = result.scalar_one_or_none()
    if profile_id is None:
        raise NotFound("Member profile not found")
    return MemberProfileId(profile_id)


async def build_caller_context(db: AsyncSession, user: User) -> CallerContext:
    account_id = AccountId(user.id)
    if user.role != UserRole.MEMBER:
        return CallerContext(account_id=account_id, role=user.role)
    try:
        profile_id = await resolve_member_profile(db, account_id)
    except NotFound:
        profile_id = None
    return CallerContext(account_id=account_id, role=user.role, member_profile_id=profile_id)


def is_own_coach(caller: CallerContext, coach_id: int) -> bool:
    return caller.role == UserRole.COACH and caller.account_id == coach_id


def is_own_member(caller: CallerContext, member_id: int) -> bool:
    return (
        caller.role == UserRole.MEMBER
        and caller.member_profile_id is not None
        and caller.member_profile_id == member_id
    )


def can_view(caller: CallerContext, coach_id: int, member_id: int) -> bool:
    """Coach sees their own, member sees their own, admin sees everything."""
    return caller.is_admin or is_own_coach(caller, coach_id) or is_own_member(caller, member_id)


def can_act_as_coach(caller: CallerContext, coach_id: int) -> bool:
    return caller.is_admin or is_own_coach(caller, coach_id)


def can_act_as_member(caller: CallerContext, member_id: int) -> bool:
    return caller.is_admin or is_own_member(caller, member_id)
