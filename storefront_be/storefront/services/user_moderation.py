from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from storefront.errors import DependencyError, InvalidStateError, NotFoundError
from storefront.models.user import User
from storefront.realtime.broadcaster import Broadcaster, USER_UPDATED
from storefront.services.collaborators import CatalogCollaborator

logger = logging.getLogger(__name__)


def _actor(actor) -> str:
    return getattr(actor, "email", None) or "System"


def user_status_payload(user: User, actor=None) -> Dict[str, Any]:
    return {
        "userId": user.id,
        "email": user.email,
        "name": user.full_name,
        "status": "blocked" if user.is_blocked else "active",
        "action": "blocked" if user.is_blocked else "unblocked",
        "admin": _actor(actor),
    }


def toggle_block(db: Session, broadcaster: Optional[Broadcaster], user_id: int, actor=None) -> User:
    """Flip a customer's blocked flag and push the change to admins and the user."""
    user = CatalogCollaborator(db).get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.is_admin:
        raise InvalidStateError("Cannot block admin users")
    user.is_blocked = not user.is_blocked
    db.commit()
    db.refresh(user)
    logger.info("User %s %s by %s", user.email, "blocked" if user.is_blocked else "unblocked", _actor(actor))

    if broadcaster is None:
        return user
    payload = user_status_payload(user, actor)
    notice = {
        "status": payload["status"],
        "message": (
            "Your account has been blocked by an administrator"
            if user.is_blocked
            else "Your account has been activated"
        ),
        "admin": payload["admin"],
    }
    try:
        broadcaster.notify_admins("user-status-changed", payload, event=USER_UPDATED)
        broadcaster.notify_user(user.id, "account-status-changed", notice)
    except DependencyError as exc:
        logger.warning("Broadcast of user %s status failed: %s", user.id, exc)
    return user
