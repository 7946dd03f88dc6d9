"""Resolve the authenticated caller into an order actor (role + profile)."""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from libs.auth.dependencies import get_current_user, require_admin, require_courier
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.errors import Forbidden, NotFound
from services.orders_service.models import ActorRole, BuyerProfile, CourierProfile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class Actor:
    """Who is requesting a transition.

    ``profile_id`` is the buyer or courier profile id; admins have none.
    """

    role: ActorRole
    user_id: str
    profile_id: Optional[uuid.UUID] = None


async def get_buyer_actor(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
) -> Actor:
    result = await db.execute(
        select(BuyerProfile.id).where(BuyerProfile.user_id == current_user.user_id)
    )
    profile_id = result.scalar_one_or_none()
    if profile_id is None:
        raise NotFound("Buyer profile not found")
    return Actor(
        role=ActorRole.BUYER, user_id=current_user.user_id, profile_id=profile_id
    )


async def get_courier_actor(
    current_user: AuthUser = Depends(require_courier),
    db: AsyncSession = Depends(get_async_db),
) -> Actor:
    result = await db.execute(
        select(CourierProfile).where(CourierProfile.user_id == current_user.user_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Courier profile not found")
    if not profile.is_active:
        raise Forbidden("Courier account is inactive")
    return Actor(
        role=ActorRole.COURIER, user_id=current_user.user_id, profile_id=profile.id
    )


async def get_admin_actor(current_user: AuthUser = Depends(require_admin)) -> Actor:
    return Actor(role=ActorRole.ADMIN, user_id=current_user.user_id)
