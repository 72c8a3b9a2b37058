"""
Authentication and team Pydantic schemas.

Defines request and response schemas for sessions and user management.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Any, Dict, Optional
from backend.app.models.enums import UserRole


class ChallengeRequest(BaseModel):
    public_key: str = Field(..., min_length=1, max_length=255, description="Identity public key")


class ChallengeResponse(BaseModel):
    nonce: str
    expires_in: int = Field(..., description="Seconds until the nonce expires")


class SessionRequest(BaseModel):
    """
    Schema for starting a session.

    Used by POST /auth/session. When public_key is omitted the server asks
    its paired wallet for the identity key. Otherwise nonce and signature
    must prove the caller holds that key.
    """
    public_key: Optional[str] = Field(default=None, min_length=1, max_length=255, description="Identity public key")
    nonce: Optional[str] = Field(default=None, description="Nonce from POST /auth/challenge")
    signature: Optional[str] = Field(default=None, description="Signature over the nonce, made with public_key")


class SessionResponse(BaseModel):
    """
    Schema for JWT session response.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User ID")
    public_key: str = Field(..., description="Identity public key")
    role: UserRole = Field(..., description="Team role")
    email: Optional[str] = None


class UserCreate(BaseModel):
    """Schema for adding a team member (keyPerson/Manager only)."""
    public_key: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    role: UserRole


class OnboardRequest(BaseModel):
    email: EmailStr


class UserResponse(BaseModel):
    id: int
    public_key: str
    email: Optional[str] = None
    role: UserRole
    txid: Optional[str] = None
    output_script: Optional[str] = None
    audit_metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RoleResponse(BaseModel):
    role: Optional[UserRole] = None


class EmailResponse(BaseModel):
    email: Optional[str] = None
