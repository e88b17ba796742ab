from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..models import Account, CreateAccountRequest, ErrorResponse, Transaction, TransferRequest
from ..services.accounts import AccountService

router = APIRouter(
    prefix="/api/accounts",
    tags=["Accounts"],
    responses={400: {"model": ErrorResponse, "description": "Banking error"}}
)


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


@router.post("", response_model=Account)
async def create_account(
    request: CreateAccountRequest,
    service: AccountService = Depends(get_account_service),
):
    """계좌 생성"""
    return await service.create_account(request.account_holder_name, request.initial_balance)


@router.post("/transfer", response_model=Transaction)
async def transfer_money(
    request: TransferRequest,
    service: AccountService = Depends(get_account_service),
):
    """계좌 이체 (동시성 충돌 시 최대 3회 시도)"""
    return await service.transfer_money(
        request.source_account_number,
        request.destination_account_number,
        request.amount,
    )


@router.get("/{account_number}", response_model=Account)
async def get_account(
    account_number: str,
    service: AccountService = Depends(get_account_service),
):
    return await service.get_account(account_number)


@router.get("/{account_number}/transactions", response_model=List[Transaction])
async def get_transactions(
    account_number: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: AccountService = Depends(get_account_service),
):
    """거래 내역 조회 (limit 없으면 전체)"""
    return await service.get_transactions(account_number, limit=limit, offset=offset)
