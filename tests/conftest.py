import pytest
from fastapi.testclient import TestClient

from bankapi.main import create_app
from bankapi.services.accounts import AccountService
from bankapi.storage.memory import InMemoryAccountRepository


@pytest.fixture
def repository():
    return InMemoryAccountRepository()


@pytest.fixture
def service(repository):
    return AccountService(repository, max_retries=3, retry_backoff=0)


@pytest.fixture
def app(repository):
    return create_app(repository, max_retries=3, retry_backoff=0)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
