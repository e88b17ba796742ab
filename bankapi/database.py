import asyncpg
import redis.asyncio as redis
from typing import Optional
from contextlib import asynccontextmanager


class Database:
    def __init__(self, db_url: str):
        self.db_url = db_url
        self.pool: Optional[asyncpg.Pool] = None
        self._initialized = False

    async def close_pool(self):
        """커넥션 풀 종료"""
        if self.pool:
            await self.pool.close()
            self.pool = None

    @asynccontextmanager
    async def get_connection(self):
        """커넥션 가져오기"""
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.db_url, min_size=1, max_size=10)
        async with self.pool.acquire() as conn:
            yield conn

    async def initialize_db(self):
        """데이터베이스 초기화 (테이블 생성)"""
        if self._initialized:
            return

        async with self.get_connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    account_number VARCHAR(36) PRIMARY KEY,
                    account_holder_name TEXT NOT NULL,
                    balance NUMERIC(19, 2) NOT NULL CHECK (balance >= 0),
                    transaction_ids TEXT[] NOT NULL DEFAULT '{}',
                    version BIGINT NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id VARCHAR(36) PRIMARY KEY,
                    source_account_number VARCHAR(36) NOT NULL REFERENCES accounts (account_number),
                    destination_account_number VARCHAR(36) NOT NULL REFERENCES accounts (account_number),
                    amount NUMERIC(19, 2) NOT NULL CHECK (amount > 0),
                    type VARCHAR(20) NOT NULL,
                    description TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL
                )
            """)

        self._initialized = True


class RedisClient:
    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.client: Optional[redis.Redis] = None

    async def close_client(self):
        """Redis 클라이언트 종료"""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get_client(self):
        """Redis 클라이언트 가져오기"""
        if self.client is None:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
        return self.client
