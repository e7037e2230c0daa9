"""
Tool: VAPID Key Custodian
Purpose: Own the single VAPID key pair used to sign outgoing pushes

The stored pair wins over process configuration. Regenerating the pair
does not touch existing subscriptions: they keep their rows but pushes
signed with the new key fail until the browser resubscribes.

Usage:
    # Generate and store a new pair
    python -m farmpass.push.vapid generate-keys

    # Show the public key clients subscribe with
    python -m farmpass.push.vapid get-public-key
"""

import base64
import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from farmpass.push import get_connection, parse_timestamp, utc_now
from farmpass.push.config import load_push_config
from farmpass.push.errors import VapidKeyNotConfiguredError
from farmpass.push.models import VapidKeyPair


logger = logging.getLogger(__name__)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def create_key_pair() -> VapidKeyPair:
    """
    Create a fresh P-256 key pair without storing it.

    Returns:
        VapidKeyPair with the uncompressed public point and the raw
        private scalar, both URL-safe base64 without padding
    """
    private_key = ec.generate_private_key(ec.SECP256R1())

    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    private_bytes = private_key.private_numbers().private_value.to_bytes(32, byteorder="big")

    return VapidKeyPair(public_key=_b64url(public_bytes), private_key=_b64url(private_bytes))


def generate_key_pair(created_by: str | None = None) -> VapidKeyPair:
    """
    Generate a new VAPID key pair and overwrite the stored one.

    Existing subscriptions are left in place; they were created against
    the previous public key and will fail on their next delivery.

    Args:
        created_by: User ID of the administrator regenerating the pair

    Returns:
        The new VapidKeyPair
    """
    pair = create_key_pair()
    pair.created_at = utc_now()
    pair.created_by = created_by

    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO vapid_keys (id, public_key, private_key, created_at, created_by)
            VALUES (1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                public_key = excluded.public_key,
                private_key = excluded.private_key,
                created_at = excluded.created_at,
                created_by = excluded.created_by
            """,
            (pair.public_key, pair.private_key, pair.created_at.isoformat(), created_by),
        )
        conn.commit()
    finally:
        conn.close()

    logger.info(f"VAPID key pair regenerated by {created_by or 'system'}")
    return pair


def get_stored_key_pair() -> VapidKeyPair | None:
    """Return the stored key pair, or None when none has been generated."""
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT public_key, private_key, created_at, created_by FROM vapid_keys WHERE id = 1"
        ).fetchone()
    finally:
        conn.close()

    if not row:
        return None

    return VapidKeyPair(
        public_key=row["public_key"],
        private_key=row["private_key"],
        created_at=parse_timestamp(row["created_at"]),
        created_by=row["created_by"],
    )


def get_public_key() -> str:
    """
    Get the current VAPID public key.

    Returns:
        The stored public key, else the configured VAPID_PUBLIC_KEY

    Raises:
        VapidKeyNotConfiguredError: if neither source has a key
    """
    stored = get_stored_key_pair()
    if stored:
        return stored.public_key

    configured = load_push_config().vapid.public_key
    if configured:
        return configured

    logger.warning("VAPID public key not configured")
    raise VapidKeyNotConfiguredError()


def get_private_key() -> str:
    """Get the VAPID private key, resolved the same way as the public key."""
    stored = get_stored_key_pair()
    if stored:
        return stored.private_key

    configured = load_push_config().vapid.private_key
    if configured:
        return configured

    logger.warning("VAPID private key not configured")
    raise VapidKeyNotConfiguredError()


def has_key_pair() -> bool:
    """True when both halves of a key pair are available."""
    try:
        get_public_key()
        get_private_key()
    except VapidKeyNotConfiguredError:
        return False
    return True


def get_vapid_claims() -> dict[str, str]:
    """VAPID claims for pywebpush. The subject must be a mailto: or https: URL."""
    return {"sub": load_push_config().vapid.subject}


# CLI interface
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="VAPID key management")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    gen_parser = subparsers.add_parser("generate-keys", help="Generate and store a VAPID key pair")
    gen_parser.add_argument("--by", help="Administrator user ID")

    subparsers.add_parser("get-public-key", help="Show the VAPID public key")

    args = parser.parse_args()

    if args.command == "generate-keys":
        pair = generate_key_pair(created_by=args.by)
        print("VAPID Keys Generated Successfully")
        print("-" * 40)
        print(f"Public Key:  {pair.public_key}")
        print(f"Private Key: {pair.private_key}")
        print("-" * 40)
        print("Existing subscriptions must resubscribe with the new public key.")

    elif args.command == "get-public-key":
        try:
            print(f"VAPID Public Key: {get_public_key()}")
        except VapidKeyNotConfiguredError:
            print("VAPID public key not configured")
            print("Run: python -m farmpass.push.vapid generate-keys")

    else:
        parser.print_help()
