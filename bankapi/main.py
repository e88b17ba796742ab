import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import config
from .errors import BankingError
from .logging_config import setup_logging
from .services.accounts import AccountService
from .storage.base import AccountRepository
from .storage.factory import create_repository
from .views import accounts

logger = logging.getLogger(__name__)


def create_app(repository: AccountRepository = None, **service_options) -> FastAPI:
    if repository is None:
        repository = create_repository()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        logger.info("Storage ready: %s", type(repository).__name__)
        yield
        await repository.close()

    app = FastAPI(
        title="은행계좌 API",
        description="계좌 생성/조회, 거래 내역, 낙관적락(Version) 기반 계좌 이체",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.account_service = AccountService(repository, **service_options)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("HTTP %s %s -> %d", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=400,
            content={"error": type(exc).__name__, "message": exc.message}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "InternalServerError", "message": "Internal server error"}
        )

    # 라우터 등록
    app.include_router(accounts.router)

    @app.get("/")
    async def root():
        """메인 페이지"""
        return {
            "message": "은행계좌 API",
            "version": "1.0.0",
            "endpoints": [
                "POST /api/accounts - 계좌 생성",
                "GET /api/accounts/{account_number} - 계좌 조회",
                "POST /api/accounts/transfer - 계좌 이체",
                "GET /api/accounts/{account_number}/transactions - 거래 내역"
            ],
            "docs": "/docs"
        }

    @app.get("/health")
    async def health_check():
        """헬스체크"""
        return {"status": "healthy"}

    return app


def main():
    """uvicorn 실행 (`python -m bankapi.main`). 로깅 설정과 저장소 생성은 여기서만 한다"""
    setup_logging()
    uvicorn.run(create_app(), host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
