"""Shared fixtures: vaults with fixed keys and an asyncpg-like fake pool."""
from unittest.mock import AsyncMock

import pytest

from binance_vault.vault import CredentialVault

MASTER_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
OTHER_KEY_HEX = "ffeeddccbbaa99887766554433221100ffeeddccbbaa99887766554433221100"


class FakeTransaction:
    """Supports both ``async with conn.transaction()`` and start/commit."""

    def __init__(self):
        self.started = False
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self):
        self.started = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.committed = True
        else:
            self.rolled_back = True
        return False

    async def start(self):
        self.started = True

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True


class FakeConnection:
    def __init__(self):
        self.fetch = AsyncMock(return_value=[])
        self.fetchrow = AsyncMock(return_value=None)
        self.execute = AsyncMock(return_value="UPDATE 1")
        self.tx = FakeTransaction()

    def transaction(self):
        return self.tx


class _Acquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    def acquire(self):
        return _Acquire(self.conn)


@pytest.fixture
def vault():
    """Vault keyed with a fixed hex master key."""
    return CredentialVault(bytes.fromhex(MASTER_KEY_HEX))


@pytest.fixture
def other_vault():
    """Vault keyed with a different master key."""
    return CredentialVault(bytes.fromhex(OTHER_KEY_HEX))


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)
