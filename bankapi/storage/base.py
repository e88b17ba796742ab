"""
계좌 저장소 인터페이스

모든 구현체는 save() 시점에 version을 비교하고, 호출자가 읽은 version과
저장된 version이 다르면 ConcurrencyConflict를 던진다. 성공하면 version을 1 올린다.
atomic() 안에서 일어난 쓰기는 모두 반영되거나 하나도 반영되지 않는다.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, List, Optional

from ..models import Account, Transaction


class AccountRepository(ABC):

    async def initialize(self) -> None:
        """스키마 생성 등 (기본 no-op)"""

    async def close(self) -> None:
        """커넥션 정리 (기본 no-op)"""

    @abstractmethod
    async def find_by_account_number(self, account_number: str) -> Optional[Account]:
        """계좌 조회. 없으면 None"""

    @abstractmethod
    async def add(self, account: Account) -> Account:
        """새 계좌 저장 (insert)"""

    @abstractmethod
    async def save(self, account: Account) -> Account:
        """version 확인 후 저장. 갱신된 version이 담긴 계좌를 돌려준다"""

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def get_transactions(self, transaction_ids: List[str]) -> List[Transaction]:
        """주어진 id 순서 그대로 거래 내역 반환"""

    @abstractmethod
    def atomic(self) -> AsyncContextManager[None]:
        pass
