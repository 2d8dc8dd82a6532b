import asyncio
import inspect
import os
import sys
from pathlib import Path

os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-for-testing-only-do-not-use")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-for-testing-only-do-not-use")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from userhub.app import create_app  # noqa: E402
from userhub.config import Settings  # noqa: E402
from userhub.service.credentials import CredentialStore  # noqa: E402
from userhub.service.runtime import Runtime  # noqa: E402
from userhub.service.sessions import SessionManager  # noqa: E402
from userhub.service.tokens import TokenIssuer  # noqa: E402
from userhub.storage.memory import MemoryStore  # noqa: E402

@pytest.fixture
def settings():
    """Explicit settings; tests never read the process environment."""
    return Settings(
        use_memory_store=True,
        access_token_secret="Test-Access-Secret_for-Automation-Only-123456789",
        refresh_token_secret="Test-Refresh-Secret_for-Automation-Only-987654321",
        access_token_expiry="15m",
        refresh_token_expiry="10d",
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def credentials(memory_store):
    return CredentialStore(memory_store)


@pytest.fixture
def tokens(settings):
    return TokenIssuer(settings)


@pytest.fixture
def sessions(credentials, tokens):
    return SessionManager(credentials, tokens)


@pytest.fixture
def runtime(settings, memory_store):
    return Runtime(settings, memory_store)


@pytest.fixture
def client(runtime):
    """Test client over plain http, so secure cookies are never resent implicitly."""
    app = create_app(runtime=runtime)
    with TestClient(app) as test_client:
        yield test_client


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
