from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.models.user import User, SessionLocal, get_db, ADMIN_ROLES

logger = logging.getLogger(__name__)

http_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Identity attached to a request once the bearer token checks out."""

    user_id: int
    role: str
    name: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() in ADMIN_ROLES

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(user_id=user.id, role=user.role or "USER", name=user.full_name, email=user.email)


# ===== JWT helpers =====
def create_access_token(subject, role: str = "USER", expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "iat": now,
        "nbf": now,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _user_id_from_token(token: str) -> Optional[int]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def load_caller(db: Session, token: Optional[str]) -> Caller:
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = _user_id_from_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid user")
    if user.is_blocked:
        raise HTTPException(status_code=403, detail="Your account has been blocked by an administrator")
    return Caller.from_user(user)


def caller_from_token(token: Optional[str]) -> Optional[Caller]:
    """Resolve a caller outside the request cycle (WebSocket handshakes)."""
    db = SessionLocal()
    try:
        return load_caller(db, token)
    except HTTPException as exc:
        logger.info("Rejected realtime handshake: %s", exc.detail)
        return None
    finally:
        db.close()


def get_current_caller(
    token: HTTPAuthorizationCredentials = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Caller:
    return load_caller(db, token.credentials if token else None)


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller
