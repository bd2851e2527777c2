import pytest


@pytest.fixture
def anyio_backend():
    # The code under test is built on asyncio; pin anyio-marked tests to it.
    return "asyncio"
