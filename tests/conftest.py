import pytest
from fastapi.testclient import TestClient

from egypto.services.chat_store import ChatStore
from egypto.services.providers import ProviderRegistry
from tests.helpers import FakeProvider


@pytest.fixture
def store(tmp_path):
    s = ChatStore(tmp_path / "chat.db")
    yield s
    s.close()


@pytest.fixture
def providers():
    return [FakeProvider("gemini"), FakeProvider("deepseek")]


@pytest.fixture
def registry(providers):
    return ProviderRegistry(providers)


@pytest.fixture
def client(tmp_path, monkeypatch, registry):
    from egypto import main

    monkeypatch.setattr(main, "DATABASE_PATH", tmp_path / "api.db")
    monkeypatch.setattr(main, "build_provider_registry", lambda http_client: registry)
    with TestClient(main.app) as c:
        yield c
