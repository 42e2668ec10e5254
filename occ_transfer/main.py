import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .database import ledger_db
from .errors import TransferError
from .logging import configure_logging
from .views import transfers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # 커넥션은 프로세스 시작 시 하나만 만들고 종료 시 닫는다
    configure_logging()
    await ledger_db.init_connection()
    await ledger_db.initialize_db()
    try:
        yield
    finally:
        await ledger_db.close_connection()


app = FastAPI(
    title="OCC 계좌 이체",
    description="직렬화 충돌 시 재시도하는 낙관적 동시성 제어(OCC) 이체 엔진",
    version="1.0.0",
    lifespan=lifespan,
)

# 라우터 등록
app.include_router(transfers.router)


@app.exception_handler(TransferError)
async def transfer_error_handler(request: Request, exc: TransferError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("처리되지 않은 오류", extra={"path": str(request.url.path)})
    return JSONResponse(
        status_code=500,
        content={"code": "server_error", "message": "Internal server error.", "details": None},
    )


@app.get("/")
async def root():
    """메인 페이지"""
    return {
        "message": "OCC 계좌 이체",
        "version": "1.0.0",
        "endpoints": [
            "/transfer - 이체 (직렬화 충돌 시 자동 재시도)",
            "/balances - 잔액 조회",
            "/initialize - 계좌 초기화",
        ],
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """헬스체크"""
    return {"status": "healthy"}
