import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryPolicy:
    """OCC 충돌 재시도 정책

    기본값은 무제한 재시도, 대기 없음. max_attempts 를 지정하면 그 횟수에서 멈춘다.
    backoff_base 를 지정하면 지수 백오프 (attempt=1 이면 base, 2 이면 base*2, ...).
    """

    max_attempts: Optional[int] = None
    backoff_base: float = 0.0
    backoff_max: float = 1.0

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base < 0 or self.backoff_max < 0:
            raise ValueError("backoff must not be negative")

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        max_attempts = int(os.getenv("OCC_MAX_ATTEMPTS", "0")) or None
        return cls(
            max_attempts=max_attempts,
            backoff_base=float(os.getenv("OCC_BACKOFF_BASE", "0")),
            backoff_max=float(os.getenv("OCC_BACKOFF_MAX", "1.0")),
        )

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts

    def delay(self, attempts: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return min(self.backoff_base * (2 ** (attempts - 1)), self.backoff_max)


UNBOUNDED = RetryPolicy()
SINGLE_ATTEMPT = RetryPolicy(max_attempts=1)
