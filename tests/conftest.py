from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from whatsapp_bridge.services.connection_manager import ConnectionManager, ReconnectPolicy
from whatsapp_bridge.services.credential_store import CredentialStore
from whatsapp_bridge.services.message_router import MessageRouter
from whatsapp_bridge.services.session_store import SessionStore

from fakes import FakeSocket, FakeSocketFactory


@pytest.fixture
def store():
    return SessionStore(context_ttl=timedelta(minutes=60))


@pytest.fixture
def credential_store(tmp_path):
    credentials = CredentialStore(str(tmp_path / "sessions"))
    credentials.ensure_root()
    return credentials


@pytest.fixture
def session_db():
    db = AsyncMock()
    db.find_session.return_value = None
    return db


@pytest.fixture
def ai_service():
    ai = AsyncMock()
    ai.generate_reply.return_value = "Bienvenue ! Voici notre produit."
    ai.chat.return_value = "Oui, il est disponible."
    return ai


@pytest.fixture
def message_router(store, session_db, ai_service):
    return MessageRouter(store, session_db, ai_service, session_init_prefix="IA-AUTO:")


@pytest.fixture
def socket():
    return FakeSocket("42")


@pytest.fixture
def socket_factory():
    return FakeSocketFactory()


@pytest.fixture
def policy():
    return ReconnectPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)


@pytest.fixture
async def manager(store, credential_store, socket_factory, policy):
    router = AsyncMock()
    manager = ConnectionManager(
        store=store,
        credentials=credential_store,
        router=router,
        socket_factory=socket_factory,
        policy=policy,
    )
    yield manager
    await manager.shutdown()
