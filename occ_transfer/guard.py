import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ReleaseListener = Callable[[float, float], None]


class ConnectionGuard:
    """물리 커넥션 하나를 동시 호출자들에게 한 번에 하나씩 빌려주는 가드

    풀 대신 단일 커넥션 + 락. 획득은 실패하지 않고 앞선 보유자가 반납할 때까지 기다린다.
    반납은 성공/실패/취소 모든 경로에서 보장된다.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[Any]],
        on_release: Optional[ReleaseListener] = None,
    ):
        self._connect = connect
        self._connection = None
        self._lock = asyncio.Lock()
        self._on_release = on_release
        self.waiting = 0

    @property
    def connection(self):
        return self._connection

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def open(self):
        """프로세스 시작 시 커넥션 생성"""
        async with self._lock:
            return await self._ensure_connection()

    async def close(self):
        async with self._lock:
            if self._connection is not None and not self._connection.is_closed():
                await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def lend(self):
        """커넥션 빌려주기 (async with 블록이 끝나면 무조건 반납)"""
        self.waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self.waiting -= 1

        acquired_at = time.perf_counter()
        try:
            connection = await self._ensure_connection()
            yield connection
        finally:
            self._reclaim()
            released_at = time.perf_counter()
            self._lock.release()
            if self._on_release is not None:
                self._on_release(acquired_at, released_at)

    async def _ensure_connection(self):
        if self._connection is None or self._connection.is_closed():
            logger.info("데이터베이스 커넥션 생성")
            self._connection = await self._connect()
        return self._connection

    def _reclaim(self):
        # 트랜잭션 도중 취소된 커넥션은 다음 호출자에게 넘기지 않는다
        connection = self._connection
        if connection is None or connection.is_closed():
            return
        if connection.is_in_transaction():
            logger.warning("트랜잭션이 열린 채 반납된 커넥션을 폐기합니다.")
            connection.terminate()
            self._connection = None
