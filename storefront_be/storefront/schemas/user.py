from datetime import datetime
from pydantic import BaseModel, EmailStr
from typing import Optional


class AdminUserOut(BaseModel):
    id: int
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: str
    isBlocked: bool
    createdAt: Optional[datetime] = None
