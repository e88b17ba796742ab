from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import List, Optional

import asyncpg

from ..database import Database
from ..errors import ConcurrencyConflict
from ..models import Account, Transaction
from .base import AccountRepository

ACCOUNT_COLUMNS = "account_number, account_holder_name, balance, transaction_ids, version"
TRANSACTION_COLUMNS = (
    "id, source_account_number, destination_account_number, amount, type, description, created_at"
)


class PostgresAccountRepository(AccountRepository):
    """PostgreSQL Version 컬럼을 이용한 낙관적락 저장소"""

    def __init__(self, database: Database):
        self.database = database
        self._conn: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
            f"postgres_conn_{id(self)}", default=None
        )

    async def initialize(self) -> None:
        await self.database.initialize_db()

    async def close(self) -> None:
        await self.database.close_pool()

    @asynccontextmanager
    async def _connection(self):
        # atomic() 안이면 같은 트랜잭션의 커넥션을 재사용
        conn = self._conn.get()
        if conn is not None:
            yield conn
            return
        async with self.database.get_connection() as conn:
            yield conn

    @asynccontextmanager
    async def atomic(self):
        if self._conn.get() is not None:
            yield
            return
        async with self.database.get_connection() as conn:
            # 예외가 나면 트랜잭션 전체 롤백 -> 한쪽 계좌만 반영되는 일이 없음
            async with conn.transaction():
                token = self._conn.set(conn)
                try:
                    yield
                finally:
                    self._conn.reset(token)

    async def find_by_account_number(self, account_number: str) -> Optional[Account]:
        # 낙관적락: SELECT FOR UPDATE 사용하지 않고 version 컬럼을 함께 조회
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE account_number = $1",
                account_number
            )
        if not row:
            return None
        return Account(**dict(row))

    async def add(self, account: Account) -> Account:
        async with self._connection() as conn:
            await conn.execute(
                f"INSERT INTO accounts ({ACCOUNT_COLUMNS}) VALUES ($1, $2, $3, $4, $5)",
                account.account_number,
                account.account_holder_name,
                account.balance,
                account.transaction_ids,
                account.version
            )
        return account

    async def save(self, account: Account) -> Account:
        # 우리가 조회한 version과 같을 때만 버전업 하고 밸런스도 업데이트
        async with self._connection() as conn:
            result = await conn.execute(
                "UPDATE accounts SET account_holder_name = $1, balance = $2, transaction_ids = $3, "
                "version = version + 1, updated_at = CURRENT_TIMESTAMP "
                "WHERE account_number = $4 AND version = $5",
                account.account_holder_name,
                account.balance,
                account.transaction_ids,
                account.account_number,
                account.version
            )

        # 업데이트된 행이 없으면 충돌 발생
        if result == "UPDATE 0":
            raise ConcurrencyConflict(account.account_number, account.version)
        return account.model_copy(update={"version": account.version + 1})

    async def add_transaction(self, transaction: Transaction) -> None:
        async with self._connection() as conn:
            await conn.execute(
                f"INSERT INTO transactions ({TRANSACTION_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                transaction.id,
                transaction.source_account_number,
                transaction.destination_account_number,
                transaction.amount,
                transaction.type.value,
                transaction.description,
                transaction.created_at
            )

    async def get_transactions(self, transaction_ids: List[str]) -> List[Transaction]:
        if not transaction_ids:
            return []
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id = ANY($1::text[])",
                transaction_ids
            )
        by_id = {row["id"]: Transaction(**dict(row)) for row in rows}
        return [by_id[tid] for tid in transaction_ids]
