import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Dict, List, Optional

from ..errors import ConcurrencyConflict
from ..models import Account, Transaction
from .base import AccountRepository


class _PendingWrites:
    def __init__(self):
        self.accounts: Dict[str, Account] = {}  # 읽었던 version 그대로 보관
        self.transactions: List[Transaction] = []


class InMemoryAccountRepository(AccountRepository):
    """테스트/로컬 실행용 메모리 저장소"""

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._transactions: Dict[str, Transaction] = {}
        self._lock = asyncio.Lock()
        self._pending: ContextVar[Optional[_PendingWrites]] = ContextVar(
            f"memory_pending_{id(self)}", default=None
        )

    async def find_by_account_number(self, account_number: str) -> Optional[Account]:
        # 실제 I/O처럼 다른 요청이 끼어들 수 있도록 제어권 양보
        await asyncio.sleep(0)
        account = self._accounts.get(account_number)
        if account is None:
            return None
        return account.model_copy(deep=True)

    async def add(self, account: Account) -> Account:
        async with self._lock:
            self._accounts[account.account_number] = account.model_copy(deep=True)
        return account

    async def save(self, account: Account) -> Account:
        pending = self._pending.get()
        if pending is not None:
            # 충돌은 빨리 알리고, 실제 반영은 commit 시점에
            self._check_version(account)
            pending.accounts[account.account_number] = account.model_copy(deep=True)
            return account.model_copy(update={"version": account.version + 1})

        async with self._lock:
            self._check_version(account)
            return self._apply(account)

    async def add_transaction(self, transaction: Transaction) -> None:
        pending = self._pending.get()
        if pending is not None:
            pending.transactions.append(transaction)
            return
        self._transactions[transaction.id] = transaction

    async def get_transactions(self, transaction_ids: List[str]) -> List[Transaction]:
        return [self._transactions[tid] for tid in transaction_ids]

    @asynccontextmanager
    async def atomic(self):
        if self._pending.get() is not None:
            # 중첩 호출은 바깥 작업 단위에 합친다
            yield
            return

        pending = _PendingWrites()
        token = self._pending.set(pending)
        try:
            yield
        finally:
            self._pending.reset(token)

        # 예외 없이 빠져나온 경우에만 commit
        async with self._lock:
            for account in pending.accounts.values():
                self._check_version(account)
            for account in pending.accounts.values():
                self._apply(account)
            for transaction in pending.transactions:
                self._transactions[transaction.id] = transaction

    def _check_version(self, account: Account) -> None:
        stored = self._accounts.get(account.account_number)
        if stored is None or stored.version != account.version:
            raise ConcurrencyConflict(account.account_number, account.version)

    def _apply(self, account: Account) -> Account:
        saved = account.model_copy(update={"version": account.version + 1}, deep=True)
        self._accounts[account.account_number] = saved
        return saved.model_copy(deep=True)
