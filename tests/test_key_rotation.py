"""
Tests for master key rotation.

Tests cover:
- Rows under the old key are re-encrypted under the new one
- Rows already under the new key are skipped
- Unreadable rows are counted as errors
- Keyset pagination and per-batch transactions
"""
import pytest

from binance_vault.vault import rotate_encryption_key
from binance_vault.vault.key_rotation import _SELECT_BATCH, _UPDATE_SECRET


class TestKeyRotation:
    """Tests for rotate_encryption_key."""

    async def test_rotation_stats(self, pool, conn, vault, other_vault):
        rows = [
            {"id": 1, "api_secret": vault.encrypt("secret-one")},
            {"id": 2, "api_secret": other_vault.encrypt("secret-two")},
            {"id": 3, "api_secret": "garbage"},
        ]
        conn.fetch.side_effect = [rows, []]

        stats = await rotate_encryption_key(pool, vault, other_vault)

        assert stats == {"total": 3, "rotated": 1, "errors": 1, "skipped": 1}
        assert conn.tx.committed
        assert not conn.tx.rolled_back

    async def test_rotated_secret_decrypts_with_new_key(self, pool, conn, vault, other_vault):
        conn.fetch.side_effect = [[{"id": 5, "api_secret": vault.encrypt("s3cret")}], []]

        await rotate_encryption_key(pool, vault, other_vault)

        sql, payload, row_id = conn.execute.await_args.args
        assert sql == _UPDATE_SECRET
        assert row_id == 5
        assert other_vault.decrypt(payload) == "s3cret"

    async def test_pages_by_last_id(self, pool, conn, vault, other_vault):
        conn.fetch.side_effect = [
            [{"id": 1, "api_secret": vault.encrypt("a")},
             {"id": 4, "api_secret": vault.encrypt("b")}],
            [],
        ]

        await rotate_encryption_key(pool, vault, other_vault, batch_size=2)

        calls = [c.args for c in conn.fetch.await_args_list]
        assert calls == [(_SELECT_BATCH, 0, 2), (_SELECT_BATCH, 4, 2)]

    async def test_empty_table(self, pool, conn, vault, other_vault):
        stats = await rotate_encryption_key(pool, vault, other_vault)
        assert stats == {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}
        conn.execute.assert_not_called()

    async def test_failed_update_rolls_back(self, pool, conn, vault, other_vault):
        conn.fetch.side_effect = [[{"id": 1, "api_secret": vault.encrypt("a")}], []]
        conn.execute.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            await rotate_encryption_key(pool, vault, other_vault)
        assert conn.tx.rolled_back
        assert not conn.tx.committed

    @pytest.mark.parametrize("batch_size", [0, -1])
    async def test_invalid_batch_size(self, pool, vault, other_vault, batch_size):
        with pytest.raises(ValueError):
            await rotate_encryption_key(pool, vault, other_vault, batch_size=batch_size)
