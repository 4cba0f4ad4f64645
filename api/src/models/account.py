"""
Account models.

Provides Pydantic schemas for:
- Accounts as stored in the ``accounts`` collection
- First sign-in sync and profile update requests
- Credit balance changes
- The author projection used to enrich image records
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from api.src.constants import CREDIT_FEE

DEFAULT_CREDIT_BALANCE = 10
DEFAULT_PLAN_ID = 1


class AccountCreate(BaseModel):
    """Account fields received from the identity provider on first sign-in."""
    identity_id: str = Field(
        ...,
        min_length=1,
        description="Identity-provider user id"
    )
    email: EmailStr = Field(
        ...,
        description="Email address"
    )
    username: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Display username"
    )
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    photo: Optional[str] = Field(None, description="Avatar URL")

    model_config = {
        "json_schema_extra": {
            "example": {
                "identity_id": "user_2abc",
                "email": "jane@example.com",
                "username": "jane",
                "first_name": "Jane",
                "last_name": "Doe",
                "photo": "https://img.example.com/jane.png"
            }
        }
    }


class AccountUpdate(BaseModel):
    """Profile fields that may change after sign-in."""
    username: str = Field(..., min_length=1, max_length=64)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    photo: Optional[str] = None


class CreditUpdate(BaseModel):
    """Credit balance change; negative values spend credits."""
    credit_fee: int = Field(CREDIT_FEE, description="Amount added to the balance")


class Account(BaseModel):
    """Stored account."""
    id: str
    identity_id: str
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    photo: Optional[str] = None
    plan_id: int = DEFAULT_PLAN_ID
    credit_balance: int = Field(default=DEFAULT_CREDIT_BALANCE, ge=0)


class AuthorSummary(BaseModel):
    """Minimal owner identity attached to image records."""
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    identity_id: Optional[str] = None
