import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from .. import config
from ..errors import (
    AccountNotFound,
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidInput,
    TransferFailed,
)
from ..models import (
    CENT,
    MAX_MONEY,
    Account,
    Transaction,
    TransactionType,
    as_decimal,
    to_money,
)
from ..storage.base import AccountRepository

logger = logging.getLogger(__name__)


class AccountService:
    """계좌 생성/조회와 낙관적락 기반 계좌 이체"""

    def __init__(
        self,
        repository: AccountRepository,
        max_retries: int = config.TRANSFER_MAX_RETRIES,
        retry_backoff: float = config.TRANSFER_RETRY_BACKOFF,
    ):
        self.repository = repository
        self.max_retries = max_retries  # 재시도 포함 총 시도 횟수
        self.retry_backoff = retry_backoff

    async def create_account(self, account_holder_name: str, initial_balance) -> Account:
        # 반올림 전에 부호 확인 (-0.004 가 -0.00 으로 통과하지 않도록)
        initial_balance = as_decimal(initial_balance)
        if initial_balance < 0:
            raise InvalidInput("Initial balance cannot be negative")
        initial_balance = to_money(initial_balance)

        account = Account(account_holder_name=account_holder_name, balance=initial_balance)
        account = await self.repository.add(account)
        logger.info("Created account %s (balance=%s)", account.account_number, account.balance)
        return account

    async def get_account(self, account_number: str) -> Account:
        account = await self.repository.find_by_account_number(account_number)
        if account is None:
            raise AccountNotFound(account_number)
        return account

    async def get_transactions(
        self, account_number: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[Transaction]:
        """계좌의 거래 내역 (발생 순서). limit이 없으면 전체"""
        if offset < 0 or (limit is not None and limit <= 0):
            raise InvalidInput("limit must be positive and offset must not be negative")

        account = await self.get_account(account_number)
        end = None if limit is None else offset + limit
        return await self.repository.get_transactions(account.transaction_ids[offset:end])

    async def transfer_money(
        self, source_account_number: str, destination_account_number: str, amount
    ) -> Transaction:
        """계좌 이체 (동시성 충돌 시에만 재시도)"""
        if source_account_number == destination_account_number:
            raise InvalidInput("Cannot transfer to the same account")

        amount = as_decimal(amount)
        if amount <= 0:
            raise InvalidInput("Transfer amount must be positive")
        if amount < CENT:
            raise InvalidInput("Transfer amount must be at least 0.01")

        for attempt in range(self.max_retries):
            try:
                transaction = await self._execute_transfer(
                    source_account_number, destination_account_number, amount
                )
            except ConcurrencyConflict as e:
                logger.warning(
                    "Transfer %s -> %s conflicted (attempt %d/%d): %s",
                    source_account_number, destination_account_number,
                    attempt + 1, self.max_retries, e.message,
                )
                # 지수 백오프: attempt=0 이면 0.01초, attempt=1 이면 0.02초...
                if attempt + 1 < self.max_retries and self.retry_backoff > 0:
                    await asyncio.sleep(self.retry_backoff * (2 ** attempt))
                continue

            logger.info(
                "Transferred %s from %s to %s (transaction %s, attempt %d)",
                transaction.amount, source_account_number, destination_account_number,
                transaction.id, attempt + 1,
            )
            return transaction

        logger.error(
            "Transfer %s -> %s gave up after %d attempts",
            source_account_number, destination_account_number, self.max_retries,
        )
        raise TransferFailed(f"Failed to complete transfer after {self.max_retries} attempts")

    async def _execute_transfer(
        self, source_account_number: str, destination_account_number: str, amount: Decimal
    ) -> Transaction:
        """단일 이체 시도. 매번 두 계좌를 새로 읽는다"""
        source = await self.repository.find_by_account_number(source_account_number)
        if source is None:
            raise AccountNotFound(source_account_number, role="Source account")
        destination = await self.repository.find_by_account_number(destination_account_number)
        if destination is None:
            raise AccountNotFound(destination_account_number, role="Destination account")

        if source.balance < amount:
            raise InsufficientFunds(source_account_number)

        # 잔액 이하로 확인된 금액이므로 반올림해도 범위를 넘지 않음
        amount = to_money(amount)
        if destination.balance + amount >= MAX_MONEY:
            raise InvalidInput(f"Balance limit exceeded for account: {destination_account_number}")

        source.balance -= amount
        destination.balance += amount

        transaction = Transaction(
            source_account_number=source_account_number,
            destination_account_number=destination_account_number,
            amount=amount,
            type=TransactionType.TRANSFER,
            description=f"Transfer from {source_account_number} to {destination_account_number}",
        )
        source.transaction_ids.append(transaction.id)
        destination.transaction_ids.append(transaction.id)

        # 두 계좌 모두 version 확인 후 저장. 하나라도 충돌하면 전부 반영되지 않음
        async with self.repository.atomic():
            await self.repository.add_transaction(transaction)
            await self.repository.save(source)
            await self.repository.save(destination)

        return transaction
