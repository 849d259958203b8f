from pydantic import BaseModel, EmailStr
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


class UserCreate(BaseModel):
    clerk_user_id: str
    email: EmailStr
    role: UserRole


class UserResponse(BaseModel):
    id: str
    clerk_user_id: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime


class Actor(BaseModel):
    """Already-authenticated identity handed to the services"""

    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
