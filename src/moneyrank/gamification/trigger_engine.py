"""Badge trigger engine: evaluates a submission snapshot against badge criteria."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.db.models import BadgeDefinition
from moneyrank.gamification import rules
from moneyrank.gamification.badge_service import award_badge, earned_badge_ids

logger = logging.getLogger(__name__)


class TriggerEngine:
    """Evaluates badge triggers for one submission, inside its transaction."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._badge_cache: list[BadgeDefinition] | None = None

    async def _load_badges(self) -> list[BadgeDefinition]:
        """Load and cache all active badge definitions."""
        if self._badge_cache is None:
            result = await self.db.execute(
                select(BadgeDefinition)
                .where(BadgeDefinition.is_active.is_(True))
                .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
            )
            self._badge_cache = list(result.scalars())
        return self._badge_cache

    async def evaluate(self, snapshot: rules.BadgeSnapshot) -> list[BadgeDefinition]:
        """Award every badge whose predicate now holds.

        Returns the badges newly awarded by this call (may be empty). Does not
        commit; the caller's transaction decides whether the awards stick.
        """
        badges = await self._load_badges()
        already = await earned_badge_ids(self.db, snapshot.user_id)
        awarded: list[BadgeDefinition] = []

        for badge in badges:
            if badge.id in already:
                continue
            if not rules.evaluate(badge.trigger_type, snapshot, badge.trigger_config):
                continue
            metadata = rules.award_metadata(badge.trigger_type, snapshot)
            if await award_badge(self.db, snapshot.user_id, badge, metadata=metadata):
                awarded.append(badge)

        if awarded:
            logger.debug(
                "User %s earned %s", snapshot.user_id, ", ".join(b.slug for b in awarded)
            )
        return awarded
