"""Pydantic response models for badge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BadgeDefinitionResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    total_earned: int = 0


class EarnedBadgeResponse(BaseModel):
    slug: str
    name: str
    earned_at: datetime
    metadata: dict = {}


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    total_available: int
    total_earned: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeDefinitionResponse]
