# app/schemas/user.py

from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional
from datetime import datetime

Role = Literal["customer", "seller", "admin"]


class Actor(BaseModel):
    """
    Already authenticated caller. Every service that mutates state receives one explicitly.
    """
    id: int
    role: Role

    model_config = {"frozen": True}


class UserCreate(BaseModel):
    """
    Self-registration of a customer. An optional referral code is applied right after the account is created.
    """
    name: Optional[str] = None
    email: EmailStr
    password: str = Field(..., min_length=6)
    referral_code: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: Optional[str] = None
    email: str
    role: Role
    loyalty_points: int
    loyalty_tier: str
    affiliate_code: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class RegisterResponse(BaseModel):
    user: UserResponse
    referral_applied: bool = False
    referral_error: Optional[str] = None
    discount: int = 0


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
