from decimal import Decimal
from typing import Any, Dict, Optional


class TransferError(Exception):
    """이체 엔진이 호출자에게 돌려주는 도메인 오류의 기반 클래스

    메시지 문자열이 아니라 code 와 구조화된 필드로 구분한다.
    attempts / elapsed_ms 는 리포터가 채워 넣는다.
    """

    code = "transfer_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details
        self.attempts = 0
        self.elapsed_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        details = {key: _jsonable(value) for key, value in self.details.items()}
        details["attempts"] = self.attempts
        if self.elapsed_ms is not None:
            details["transaction_time"] = f"{self.elapsed_ms:.3f}ms"
        return {"code": self.code, "message": self.message, "details": details}


class InvalidRequest(TransferError):
    code = "invalid_request"
    status_code = 400


class InsufficientFunds(TransferError):
    code = "insufficient_funds"
    status_code = 409

    def __init__(self, payer_id, balance: Decimal, amount: Decimal):
        super().__init__(
            "잔액이 부족합니다.", payer_id=payer_id, balance=balance, amount=amount
        )
        self.payer_id = payer_id
        self.balance = balance
        self.amount = amount


class AccountNotFound(TransferError):
    code = "account_not_found"
    status_code = 404

    def __init__(self, message: str, account_id):
        super().__init__(message, account_id=account_id)
        self.account_id = account_id


class PayerNotFound(AccountNotFound):
    code = "payer_not_found"

    def __init__(self, payer_id):
        super().__init__("출금 계좌를 찾을 수 없습니다.", payer_id)


class PayeeNotFound(AccountNotFound):
    code = "payee_not_found"

    def __init__(self, payee_id):
        super().__init__("입금 계좌를 찾을 수 없습니다.", payee_id)


class RetryLimitExceeded(TransferError):
    """재시도 한도를 설정한 경우에만 발생 (기본값은 무제한)"""

    code = "retry_limit_exceeded"
    status_code = 503

    def __init__(self, max_attempts: int):
        super().__init__(
            f"최대 재시도 횟수({max_attempts})를 초과했습니다. 동시성 충돌이 지속되고 있습니다.",
            max_attempts=max_attempts,
        )
        self.max_attempts = max_attempts


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value
