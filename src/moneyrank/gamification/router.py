"""Badge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.auth.dependencies import get_current_user
from moneyrank.database import get_session
from moneyrank.db.models import BadgeDefinition, BadgeStats, User, UserBadge
from moneyrank.gamification.schemas import (
    AllBadgesResponse,
    BadgeDefinitionResponse,
    EarnedBadgeResponse,
    UserBadgesResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Badges"])


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)):
    """Get all badge definitions with how many players hold each."""
    result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order)
    )
    badges = result.scalars().all()

    stats_result = await db.execute(select(BadgeStats))
    stats_map = {s.badge_id: s for s in stats_result.scalars()}

    items = []
    for b in badges:
        s = stats_map.get(b.id)
        items.append(BadgeDefinitionResponse(
            slug=b.slug,
            name=b.name,
            description=b.description,
            icon=b.icon,
            category=b.category,
            rarity=b.rarity,
            total_earned=s.total_earned if s else 0,
        ))

    return AllBadgesResponse(badges=items)


@router.get("/users/me/badges", response_model=UserBadgesResponse)
async def get_my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get current user's earned badges."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user.id)
        .order_by(UserBadge.earned_at.desc())
    )
    earned_badges = result.scalars().all()

    total_available = await db.execute(
        select(func.count()).select_from(BadgeDefinition).where(BadgeDefinition.is_active.is_(True))
    )

    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                slug=ub.badge.slug,
                name=ub.badge.name,
                earned_at=ub.earned_at,
                metadata=ub.badge_metadata or {},
            )
            for ub in earned_badges
        ],
        total_available=total_available.scalar_one(),
        total_earned=len(earned_badges),
    )
