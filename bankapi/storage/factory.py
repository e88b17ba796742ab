from .. import config
from ..database import Database, RedisClient
from .base import AccountRepository
from .memory import InMemoryAccountRepository
from .postgres import PostgresAccountRepository
from .redis import RedisAccountRepository


def create_repository(backend: str = None) -> AccountRepository:
    """STORAGE_BACKEND 설정에 맞는 저장소 생성 (memory, postgres, redis)"""
    backend = (backend or config.STORAGE_BACKEND).lower()

    if backend == "memory":
        return InMemoryAccountRepository()
    if backend == "postgres":
        return PostgresAccountRepository(Database(config.DATABASE_URL))
    if backend == "redis":
        return RedisAccountRepository(RedisClient(config.REDIS_URL))
    raise ValueError(f"Unknown storage backend: {backend}")
