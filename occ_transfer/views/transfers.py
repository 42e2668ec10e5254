from typing import List, Optional

from fastapi import APIRouter, Query

from ..models import InitializeRequest, TransferRequest, TransferResponse
from ..scenarios.optimistic import OptimisticTransferService

router = APIRouter(
    tags=["OCC Transfer"],
    responses={404: {"description": "Not found"}}
)

# 서비스 인스턴스 생성
service = OptimisticTransferService()


@router.post("/transfer", response_model=TransferResponse)
async def transfer(request: TransferRequest):
    """OCC 재시도를 사용한 계좌 이체"""
    result = await service.transfer(request)
    return TransferResponse.from_result(result)


@router.post("/initialize")
async def initialize_accounts(request: Optional[InitializeRequest] = None):
    """계좌 초기화 (기본값 account_a: 100.00, account_b: 50.00)"""
    balances = None
    if request is not None and request.accounts:
        balances = {account.account_id: account.balance for account in request.accounts}
    balances = await service.initialize_accounts(balances)
    return {"message": "계좌가 초기화되었습니다.", "balances": _as_text(balances)}


@router.get("/balances")
async def get_balances(account_id: Optional[List[str]] = Query(default=None)):
    """현재 잔액 조회"""
    balances = await service.get_balances(account_id)
    return {"balances": _as_text(balances)}


def _as_text(balances):
    # Decimal 은 float 로 바꾸지 않고 문자열 그대로 내보낸다
    return {str(account_id): str(balance) for account_id, balance in balances.items()}
