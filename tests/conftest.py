"""pytest configuration for Tailnet Discovery tests."""

import asyncio

import pytest

from tailnet.registry import ReachabilityProber, RegistryService, RegistryStore


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture()
def store(tmp_path):
    s = RegistryStore.open(tmp_path / "test.db")
    yield s
    s.close()


@pytest.fixture()
def registry(store):
    return RegistryService(store, ReachabilityProber(timeout=0.5))


@pytest.fixture()
async def listener():
    """A local TCP server that accepts and drops connections; yields its port."""
    async def _handle(reader, writer):
        writer.close()

    server = await asyncio.start_server(_handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest.fixture()
def closed_port():
    """A local port with nothing listening on it."""
    import socket

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
