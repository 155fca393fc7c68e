"""
Fixtures compartilhadas entre todos os testes.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


# ---------------------------------------------------------------------------
# Configuração Dynaconf isolada para testes
# Usa monkeypatch para sobrescrever os atributos sem tocar em arquivos .toml
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Sobrescreve as settings do Dynaconf com valores de teste.
    `autouse=True` garante que nenhum teste dependa da configuração real.
    """
    from microblog import config

    monkeypatch.setattr(config.settings, "domain", "microblog.test")
    monkeypatch.setattr(config.settings, "followers_page_size", 20)
    monkeypatch.setattr(config.settings, "software_name", "microblog")
    monkeypatch.setattr(config.settings, "software_version", "0.1.0")


# ---------------------------------------------------------------------------
# Banco em memória isolado por teste
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    """Engine SQLite em memória, isolada por teste, sem tocar em arquivos."""
    from microblog.database import Base
    from microblog.models import actor, follow, key, post, user  # noqa: F401

    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def patch_session_factory(session_factory):
    """Faz o código que abre sessões próprias usar o banco em memória."""
    with patch("microblog.database.async_session_factory", session_factory):
        yield session_factory


# ---------------------------------------------------------------------------
# Conta local e actors remotos
# ---------------------------------------------------------------------------


@pytest.fixture
def local_actor_url() -> str:
    return "https://microblog.test/users/alice"


@pytest.fixture
def remote_actor_url() -> str:
    return "https://remote.example/users/bob"


@pytest_asyncio.fixture
async def alice(session):
    """Conta local `alice`, já persistida."""
    from microblog.services.setup import setup_account

    user = await setup_account(session, "alice", "Alice")
    await session.commit()
    return user


@pytest.fixture
def make_remote_actor_doc():
    """Factory de documentos de actor remoto (JSON)."""

    def _make(
        username: str = "bob",
        host: str = "remote.example",
        shared_inbox: bool = True,
        name: str | None = "Bob",
    ) -> dict:
        uri = f"https://{host}/users/{username}"
        doc = {
            "id": uri,
            "type": "Person",
            "preferredUsername": username,
            "inbox": f"{uri}/inbox",
            "url": f"https://{host}/@{username}",
        }
        if name is not None:
            doc["name"] = name
        if shared_inbox:
            doc["endpoints"] = {"sharedInbox": f"https://{host}/inbox"}
        return doc

    return _make


@pytest.fixture
def make_follow_doc(make_remote_actor_doc, local_actor_url):
    """Factory de atividades Follow (JSON) com o actor embutido."""

    def _make(
        actor: dict | str | None = None,
        target: str | None = None,
        follow_id: str = "https://remote.example/follows/1",
    ) -> dict:
        return {
            "@context": "https://www.w3.org/ns/activitystreams",
            "id": follow_id,
            "type": "Follow",
            "actor": actor if actor is not None else make_remote_actor_doc(),
            "object": target or local_actor_url,
        }

    return _make


@pytest.fixture
def make_undo_doc(make_follow_doc, remote_actor_url):
    """Factory de Undo(Follow) (JSON)."""

    def _make(obj: dict | str | None = None, actor: str | None = None) -> dict:
        return {
            "@context": "https://www.w3.org/ns/activitystreams",
            "id": "https://remote.example/follows/1/undo",
            "type": "Undo",
            "actor": actor or remote_actor_url,
            "object": obj if obj is not None else make_follow_doc(actor=remote_actor_url),
        }

    return _make
