import pytest


@pytest.fixture
def anyio_backend() -> str:
    # The services are built on asyncio (asyncio.to_thread, asyncio.Event).
    return "asyncio"
