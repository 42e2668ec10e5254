import asyncio
import enum
import logging
import time
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from ..database import DEFAULT_BALANCES, ISOLATION_LEVEL, Database, ledger_db
from ..errors import (
    InsufficientFunds,
    InvalidRequest,
    PayeeNotFound,
    PayerNotFound,
    RetryLimitExceeded,
    TransferError,
)
from ..models import TransferRequest, TransferResult
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure. Aurora DSQL 의 OCC 충돌(OC000/OC001)도 이 SQLSTATE 로 온다.
SERIALIZATION_FAILURE = "40001"


class Verdict(enum.Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


def classify_commit_error(error: BaseException) -> Verdict:
    """커밋 실패가 일시적인 직렬화 충돌인지 판정 (재시도 정책은 여기에만 둔다)"""
    if getattr(error, "sqlstate", None) == SERIALIZATION_FAILURE:
        return Verdict.RETRYABLE
    return Verdict.FATAL


def _affected_rows(status: str) -> int:
    # asyncpg execute() 는 "UPDATE 1" 형태의 커맨드 태그를 돌려준다
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


async def execute_transfer(conn, payer_id, payee_id, amount: Decimal) -> Decimal:
    """열린 트랜잭션 안에서 출금 후 입금. 커밋은 호출자(재시도 루프)의 몫"""
    ############################출금 (갱신 + 결과 잔액을 한 번에)############################
    row = await conn.fetchrow(
        "UPDATE accounts SET balance = balance - $1 WHERE id = $2 RETURNING balance",
        amount, payer_id
    )
    if row is None:
        raise PayerNotFound(payer_id)

    payer_balance = row["balance"]
    if payer_balance < 0:
        raise InsufficientFunds(payer_id, payer_balance + amount, amount)

    ############################입금############################
    status = await conn.execute(
        "UPDATE accounts SET balance = balance + $1 WHERE id = $2",
        amount, payee_id
    )
    if _affected_rows(status) != 1:
        raise PayeeNotFound(payee_id)

    return payer_balance


class TransferAttemptLoop:
    """OCC 재시도 루프: Start -> Attempting -> Done | Attempting | Aborted

    시도마다 새 트랜잭션을 열고, 커밋 단계의 직렬화 충돌만 다시 시도한다.
    잔액 부족/계좌 없음 같은 업무 오류는 커밋 전에 발견되므로 재시도하지 않는다.
    """

    def __init__(
        self,
        conn,
        request: TransferRequest,
        policy: RetryPolicy,
        isolation: Optional[str] = ISOLATION_LEVEL,
    ):
        self.conn = conn
        self.request = request
        self.policy = policy
        self.isolation = isolation
        self.attempts = 0

    async def run(self) -> Decimal:
        while True:
            self.attempts += 1
            transaction = self.conn.transaction(isolation=self.isolation)
            try:
                await transaction.start()
            except BaseException:
                # BEGIN 이 실패하면 드라이버가 중첩 트랜잭션 상태로 남으므로 커넥션을 버린다
                self.conn.terminate()
                raise

            # 1단계: 추측 실행 (읽기/쓰기)
            try:
                payer_balance = await execute_transfer(
                    self.conn,
                    self.request.payer_id,
                    self.request.payee_id,
                    self.request.amount,
                )
            except Exception:
                await self._abandon(transaction)
                raise

            # 2단계: 커밋. 충돌은 여기서만 판정한다
            try:
                await transaction.commit()
            except Exception as e:
                if classify_commit_error(e) is Verdict.FATAL:
                    raise
                logger.debug(
                    "커밋 충돌 감지 - 재시도",
                    extra={"attempts": self.attempts, "sqlstate": SERIALIZATION_FAILURE},
                )
                if self.policy.exhausted(self.attempts):
                    raise RetryLimitExceeded(self.policy.max_attempts) from e
                delay = self.policy.delay(self.attempts)
                if delay:
                    await asyncio.sleep(delay)
                continue

            return payer_balance

    async def _abandon(self, transaction):
        try:
            await transaction.rollback()
        except Exception:
            # 원래 오류를 가리지 않는다. 열린 트랜잭션은 가드가 반납 시 정리한다
            logger.warning("시도 롤백 실패", exc_info=True)


class OptimisticTransferService:
    def __init__(self, db: Database = ledger_db, policy: Optional[RetryPolicy] = None):
        self.db = db
        self.policy = policy if policy is not None else RetryPolicy.from_env()
        self.initial_balances = dict(DEFAULT_BALANCES)

    async def transfer(self, request: TransferRequest) -> TransferResult:
        """OCC 재시도를 포함한 계좌 이체 (소요 시간/시도 횟수 측정 포함)"""
        start_time = time.perf_counter()

        # 같은 계좌끼리는 커넥션을 잡기 전에 거절 (시도 0회)
        if request.payer_id == request.payee_id:
            error = InvalidRequest(
                "출금 계좌와 입금 계좌가 같습니다.",
                payer_id=request.payer_id,
                payee_id=request.payee_id,
            )
            self._report_failure(error, start_time, 0)
            raise error

        loop = None
        try:
            async with self.db.get_connection() as conn:
                loop = TransferAttemptLoop(conn, request, self.policy)
                payer_balance = await loop.run()
        except TransferError as e:
            self._report_failure(e, start_time, loop.attempts if loop else 0)
            raise
        except Exception:
            logger.error(
                "이체 중 오류가 발생했습니다",
                exc_info=True,
                extra={
                    "attempts": loop.attempts if loop else 0,
                    "elapsed_ms": _elapsed_ms(start_time),
                },
            )
            raise

        result = TransferResult(
            payer_balance=payer_balance,
            elapsed_ms=_elapsed_ms(start_time),
            attempts=loop.attempts,
        )
        logger.info(
            "이체가 성공했습니다",
            extra={
                "payer_id": request.payer_id,
                "payee_id": request.payee_id,
                "attempts": result.attempts,
                "elapsed_ms": result.elapsed_ms,
            },
        )
        return result

    def _report_failure(self, error: TransferError, start_time: float, attempts: int):
        error.attempts = attempts
        error.elapsed_ms = _elapsed_ms(start_time)
        logger.info(
            error.message,
            extra={"code": error.code, "attempts": attempts, "elapsed_ms": error.elapsed_ms},
        )

    async def initialize_accounts(
        self, balances: Optional[Mapping[str, Decimal]] = None
    ) -> Dict[str, Decimal]:
        """계좌 초기화
        1. 기존 계좌값 전체 삭제
        2. 새로운 계좌 생성 & 초기화 값 입력
        """
        balances = dict(balances if balances is not None else self.initial_balances)
        await self.db.initialize_db()

        async with self.db.get_connection() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM accounts")
                await conn.executemany(
                    "INSERT INTO accounts (id, balance) VALUES ($1, $2)",
                    list(balances.items()),
                )

        return balances

    async def get_balances(self, account_ids: Optional[Iterable] = None) -> Dict[str, Decimal]:
        """현재 잔액 조회"""
        async with self.db.get_connection() as conn:
            if account_ids is None:
                rows = await conn.fetch("SELECT id, balance FROM accounts ORDER BY id")
            else:
                rows = await conn.fetch(
                    "SELECT id, balance FROM accounts WHERE id = ANY($1) ORDER BY id",
                    list(account_ids),
                )

        return {row["id"]: row["balance"] for row in rows}


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000.0
