"""Pydantic schemas for tokens, logout and revocation endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class DevTokenRequest(BaseModel):
    user_id: int = Field(0, ge=0)
    role: str = "SuperAdmin"
    name: str = "user"
    type: str = "USER"
    level: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class RevocationStats(BaseModel):
    revoked_tokens: int
    revoked_users: int


class MessageResponse(BaseModel):
    errors_exist_flag: bool = Field(False, serialization_alias="errorsExistFlag")
    message: str
