import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from models import AccountCategory, AccountRole, TransactionType


class UserIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, max_length=7)

    @field_validator("type")
    @classmethod
    def reject_transfer(cls, v: TransactionType) -> TransactionType:
        if v == TransactionType.transfer:
            raise ValueError("Categories are either income or expense")
        return v


class AccountTypeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: AccountCategory
    role: AccountRole = AccountRole.general
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    affects_net_worth: bool = True
    is_default: bool = False


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    account_type_id: int
    initial_balance_cents: int = 0
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    is_default: bool = False


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    account_type_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    is_default: Optional[bool] = None


class TransactionIn(BaseModel):
    date: dt.date
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    category_id: int
    description: str = Field(..., min_length=1, max_length=200)
    account_id: Optional[int] = None

    @field_validator("type")
    @classmethod
    def reject_transfer(cls, v: TransactionType) -> TransactionType:
        if v == TransactionType.transfer:
            raise ValueError("Use a transfer to move money between accounts")
        return v


class TransferIn(BaseModel):
    date: dt.date
    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    from_account_id: int
    to_account_id: int

    @model_validator(mode="after")
    def accounts_differ(self) -> "TransferIn":
        if self.from_account_id == self.to_account_id:
            raise ValueError("From and To accounts must be different")
        return self
