class BankingError(Exception):
    """계좌/이체 처리 중 발생하는 모든 업무 오류의 기본 클래스"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(BankingError):
    """음수 초기 잔액, 같은 계좌로의 이체, 0 이하 금액"""


class AccountNotFound(BankingError):
    def __init__(self, account_number: str, role: str = "Account"):
        super().__init__(f"{role} not found: {account_number}")
        self.account_number = account_number


class InsufficientFunds(BankingError):
    def __init__(self, account_number: str):
        super().__init__(f"Insufficient funds in account: {account_number}")
        self.account_number = account_number


class ConcurrencyConflict(BankingError):
    """저장 시점에 version이 달라진 경우 (낙관적락 충돌). 재시도 대상"""

    def __init__(self, account_number: str, expected_version: int):
        super().__init__(
            f"Concurrent modification detected on account {account_number} "
            f"(expected version {expected_version})"
        )
        self.account_number = account_number
        self.expected_version = expected_version


class TransferFailed(BankingError):
    """재시도 횟수를 모두 소진한 경우"""
