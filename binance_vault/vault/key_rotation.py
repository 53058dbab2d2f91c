"""
Vault Key Rotation — Batch re-encryption of stored API secrets.

Re-encrypts every ``binance_accounts.api_secret`` from the old master key to
the new one in configurable batches. Each batch runs in its own transaction
for resumability. Rows are walked by primary key so a rerun after a partial
failure only touches rows that still decrypt under the old key; rows that
already moved are counted as skipped.

Security Note:
    Plaintext exists in memory only during re-encryption of each row.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any

from ..exceptions import AuthenticationFailure, InvalidFormat
from .crypto import CredentialVault

logger = logging.getLogger("binance_vault.vault")

# SQL statements
_SELECT_BATCH = """
SELECT id, api_secret
FROM binance_accounts
WHERE id > $1
ORDER BY id
LIMIT $2
"""

_UPDATE_SECRET = """
UPDATE binance_accounts
SET api_secret = $1, updated_at = NOW()
WHERE id = $2
"""


async def rotate_encryption_key(
    db_pool: Any,
    old_vault: CredentialVault,
    new_vault: CredentialVault,
    batch_size: int = 100,
) -> dict:
    """Re-encrypt all stored secrets from ``old_vault`` to ``new_vault``.

    Args:
        db_pool: asyncpg-compatible connection pool.
        old_vault: Vault keyed with the retiring master key.
        new_vault: Vault keyed with the new master key.
        batch_size: Number of rows to process per batch/transaction.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")

    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}
    last_id = 0
    batch_num = 0

    logger.info("Starting encryption key rotation (batch_size=%d)", batch_size)

    while True:
        async with db_pool.acquire() as conn:
            rows = await conn.fetch(_SELECT_BATCH, last_id, batch_size)

        if not rows:
            break

        batch_num += 1
        logger.info("Processing batch %d (%d rows)", batch_num, len(rows))

        async with db_pool.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                for row in rows:
                    stats["total"] += 1
                    row_id = row["id"]
                    try:
                        plaintext = old_vault.decrypt(row["api_secret"])
                    except AuthenticationFailure:
                        try:
                            new_vault.decrypt(row["api_secret"])
                        except (AuthenticationFailure, InvalidFormat):
                            logger.error(
                                "Cannot decrypt secret of account id=%s with either key",
                                row_id,
                            )
                            stats["errors"] += 1
                        else:
                            stats["skipped"] += 1
                        continue
                    except InvalidFormat:
                        logger.error(
                            "Malformed secret stored for account id=%s", row_id,
                        )
                        stats["errors"] += 1
                        continue

                    await conn.execute(
                        _UPDATE_SECRET, new_vault.encrypt(plaintext), row_id,
                    )
                    stats["rotated"] += 1

                await tx.commit()
            except Exception:
                await tx.rollback()
                raise

        last_id = rows[-1]["id"]

    logger.info("Key rotation complete: %s", stats)
    return stats
