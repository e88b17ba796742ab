from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Dict, List, Optional

from ..database import RedisClient
from ..errors import ConcurrencyConflict
from ..models import Account, Transaction
from .base import AccountRepository

# KEYS: 계좌 키 n개 + 거래 키들
# ARGV[1] = n, ARGV[2..n+1] = 기대 version, ARGV[n+2..2n+1] = 계좌 데이터, 나머지 = 거래 데이터
# 모든 계좌의 version이 맞을 때만 전부 쓴다. 충돌 시 -(충돌한 계좌 순번) 반환
CHECK_AND_SET_SCRIPT = """
local n = tonumber(ARGV[1])
for i = 1, n do
    if redis.call('HGET', KEYS[i], 'version') ~= ARGV[1 + i] then
        return -i
    end
end
for i = 1, n do
    redis.call('HSET', KEYS[i], 'version', tonumber(ARGV[1 + i]) + 1, 'data', ARGV[1 + n + i])
end
for j = n + 1, #KEYS do
    redis.call('SET', KEYS[j], ARGV[1 + n + j])
end
return 1
"""


def account_key(account_number: str) -> str:
    return f"account:{account_number}"


def transaction_key(transaction_id: str) -> str:
    return f"transaction:{transaction_id}"


class _PendingWrites:
    def __init__(self):
        self.accounts: Dict[str, Account] = {}
        self.transactions: List[Transaction] = []


class RedisAccountRepository(AccountRepository):
    """Redis Lua 스크립트로 version 비교-후-쓰기를 원자적으로 수행하는 저장소"""

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client
        self._script = None
        self._pending: ContextVar[Optional[_PendingWrites]] = ContextVar(
            f"redis_pending_{id(self)}", default=None
        )

    async def close(self) -> None:
        await self.redis_client.close_client()

    async def _check_and_set(self, accounts: List[Account], transactions: List[Transaction]) -> None:
        redis = await self.redis_client.get_client()
        if self._script is None:
            self._script = redis.register_script(CHECK_AND_SET_SCRIPT)

        keys = [account_key(a.account_number) for a in accounts]
        keys += [transaction_key(t.id) for t in transactions]
        args = [len(accounts)]
        args += [str(a.version) for a in accounts]
        args += [
            a.model_copy(update={"version": a.version + 1}).model_dump_json()
            for a in accounts
        ]
        args += [t.model_dump_json() for t in transactions]

        result = await self._script(keys=keys, args=args)
        if int(result) < 0:
            conflicted = accounts[-int(result) - 1]
            raise ConcurrencyConflict(conflicted.account_number, conflicted.version)

    @asynccontextmanager
    async def atomic(self):
        if self._pending.get() is not None:
            yield
            return

        pending = _PendingWrites()
        token = self._pending.set(pending)
        try:
            yield
        finally:
            self._pending.reset(token)

        await self._check_and_set(list(pending.accounts.values()), pending.transactions)

    async def find_by_account_number(self, account_number: str) -> Optional[Account]:
        redis = await self.redis_client.get_client()
        stored = await redis.hgetall(account_key(account_number))
        if not stored:
            return None
        account = Account.model_validate_json(stored["data"])
        account.version = int(stored["version"])
        return account

    async def add(self, account: Account) -> Account:
        redis = await self.redis_client.get_client()
        await redis.hset(
            account_key(account.account_number),
            mapping={"version": account.version, "data": account.model_dump_json()}
        )
        return account

    async def save(self, account: Account) -> Account:
        pending = self._pending.get()
        if pending is not None:
            pending.accounts[account.account_number] = account.model_copy(deep=True)
        else:
            await self._check_and_set([account], [])
        return account.model_copy(update={"version": account.version + 1})

    async def add_transaction(self, transaction: Transaction) -> None:
        pending = self._pending.get()
        if pending is not None:
            pending.transactions.append(transaction)
            return
        redis = await self.redis_client.get_client()
        await redis.set(transaction_key(transaction.id), transaction.model_dump_json())

    async def get_transactions(self, transaction_ids: List[str]) -> List[Transaction]:
        if not transaction_ids:
            return []
        redis = await self.redis_client.get_client()
        values = await redis.mget([transaction_key(tid) for tid in transaction_ids])
        return [Transaction.model_validate_json(value) for value in values]
