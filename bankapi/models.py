import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidInput

CENT = Decimal("0.01")
MAX_MONEY = Decimal(10) ** 17  # NUMERIC(19, 2)의 정수부 17자리


def as_decimal(value) -> Decimal:
    """유한한 Decimal로 변환. 반올림하지 않는다"""
    try:
        value = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise InvalidInput(f"Invalid amount: {value!r}") from None
    if not value.is_finite():
        raise InvalidInput(f"Invalid amount: {value}")
    return value


def to_money(value) -> Decimal:
    """금액은 항상 소수점 2자리 Decimal로 다룬다 (NUMERIC(19, 2))"""
    value = as_decimal(value)
    if abs(value) >= MAX_MONEY:
        raise InvalidInput(f"Amount out of range: {value}")
    value = value.quantize(CENT, rounding=ROUND_HALF_EVEN)
    # -0.00 은 0.00 으로
    return value.copy_abs() if value.is_zero() else value


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    TRANSFER = "TRANSFER"


class Account(BaseModel):
    account_number: str = Field(default_factory=_new_id)
    account_holder_name: str
    balance: Decimal
    transaction_ids: List[str] = Field(default_factory=list)
    version: int = 0  # 낙관적락용 버전 (저장소가 저장할 때마다 +1)

    @field_validator("balance")
    @classmethod
    def _quantize_balance(cls, v):
        return to_money(v)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_account_number: str
    destination_account_number: str
    amount: Decimal
    type: TransactionType = TransactionType.TRANSFER
    description: str
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, v):
        v = to_money(v)
        if v <= 0:
            raise ValueError("transaction amount must be positive")
        return v


class CreateAccountRequest(BaseModel):
    account_holder_name: str = Field(min_length=1)
    initial_balance: Decimal

    @field_validator("account_holder_name")
    @classmethod
    def _not_blank(cls, v):
        if not v.strip():
            raise ValueError("Account holder name is required")
        return v


class TransferRequest(BaseModel):
    source_account_number: str = Field(min_length=1)
    destination_account_number: str = Field(min_length=1)
    amount: Decimal


class ErrorResponse(BaseModel):
    error: str
    message: str
