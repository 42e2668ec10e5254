from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _account_id(value):
    # accounts.id 는 VARCHAR 이므로 정수 id 도 문자열로 맞춘다 (1 과 "1" 은 같은 계좌)
    if isinstance(value, bool):
        raise ValueError("account id must be a string or integer")
    if isinstance(value, int):
        return str(value)
    return value


class TransferRequest(BaseModel):
    payer_id: str = Field(min_length=1, max_length=50)
    payee_id: str = Field(min_length=1, max_length=50)
    amount: Decimal = Field(gt=0)

    @field_validator("payer_id", "payee_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _account_id(value)


class TransferResult(BaseModel):
    """커밋 완료 후 엔진이 돌려주는 결과"""
    payer_balance: Decimal
    elapsed_ms: float
    attempts: int = Field(ge=1)

    @property
    def transaction_time(self) -> str:
        return f"{self.elapsed_ms:.3f}ms"


class TransferResponse(BaseModel):
    payer_balance: Decimal
    transaction_time: str
    attempts: int

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResponse":
        return cls(
            payer_balance=result.payer_balance,
            transaction_time=result.transaction_time,
            attempts=result.attempts,
        )


class AccountBalance(BaseModel):
    account_id: str = Field(min_length=1, max_length=50)
    balance: Decimal

    @field_validator("account_id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _account_id(value)


class InitializeRequest(BaseModel):
    accounts: Optional[List[AccountBalance]] = None
