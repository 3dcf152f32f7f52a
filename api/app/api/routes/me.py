from fastapi import APIRouter, Depends

from app.core.auth import Actor
from app.core.authorization import ROLE_LABELS, visible_nav_items
from app.core.security import get_current_actor
from app.schemas.me import MeOut, NavItemOut

router = APIRouter()


@router.get("", response_model=MeOut)
async def read_me(actor: Actor = Depends(get_current_actor)) -> MeOut:
    roles = sorted(actor.roles, key=lambda role: role.value)
    return MeOut(
        id=actor.id,
        email=actor.email,
        roles=roles,
        role_labels=[ROLE_LABELS[role] for role in roles],
        navigation=[NavItemOut(title=item.title, href=item.href) for item in visible_nav_items(actor.roles)],
    )
