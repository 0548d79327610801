from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from storefront.models.user import User, get_db
from storefront.realtime.broadcaster import RoomBroadcaster, get_broadcaster
from storefront.schemas.user import AdminUserOut
from storefront.services.user_moderation import toggle_block
from storefront.utils.security import Caller, require_admin


router = APIRouter()


def _to_out(u: User) -> AdminUserOut:
    return AdminUserOut(
        id=u.id,
        firstName=u.first_name,
        lastName=u.last_name,
        email=u.email,
        phone=u.phone,
        role=u.role or "USER",
        isBlocked=bool(u.is_blocked),
        createdAt=u.created_at,
    )


@router.get("/", response_model=List[AdminUserOut])
def get_all_users(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    users = db.query(User).order_by(User.id.asc()).all()
    return [_to_out(u) for u in users]


# Toggle block user, pushed live to admins and to the user's own sessions
@router.put("/{id}/block", response_model=AdminUserOut)
def toggle_block_user(
    id: int,
    db: Session = Depends(get_db),
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
    admin: Caller = Depends(require_admin),
):
    return _to_out(toggle_block(db, broadcaster, id, actor=admin))
