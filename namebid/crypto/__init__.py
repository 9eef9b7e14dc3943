"""
Cryptographic primitives for namebid.

This module provides:
- Keccak-256 hashing
- Sealed-bid commitments
- The stable identifier hash used by the eligibility schedule
- Key generation (secp256k1) for keys bound to claimed names

Design Notes:
-------------
Commitments are Keccak-256 over a length-prefixed encoding of the bid
amount and the salt. Length prefixing keeps (10, "05") and (100, "5")
from colliding, which a plain string concatenation would allow.

The identifier hash must be identical across processes and interpreter
versions, so Python's built-in ``hash()`` (randomized per process) is never
used for scheduling.
"""

import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Domain separators
DOMAIN_BID_COMMITMENT = b"namebid:commit:v1"
DOMAIN_IDENTIFIER = b"namebid:identifier:v1"

COMMITMENT_SIZE = 32


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: bid commitments, identifier scheduling, key fingerprints.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Commitments
# =============================================================================


def _length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(4, byteorder="big") + data


def compute_commitment(amount: int, salt: str) -> bytes:
    """
    Compute the sealed-bid commitment for an amount and salt.

    C = keccak256(domain || len(amount) || amount || len(salt) || salt)

    Args:
        amount: Bid amount (non-negative integer)
        salt: Bidder's private blinding string

    Returns:
        32-byte commitment
    """
    if amount < 0:
        raise ValueError("Amount must be non-negative")

    amount_bytes = str(amount).encode("ascii")
    salt_bytes = salt.encode("utf-8")
    return keccak256(
        DOMAIN_BID_COMMITMENT
        + _length_prefixed(amount_bytes)
        + _length_prefixed(salt_bytes)
    )


def verify_commitment(commitment: bytes, amount: int, salt: str) -> bool:
    """Check that (amount, salt) opens the commitment, byte for byte."""
    if amount < 0:
        return False
    return secrets.compare_digest(compute_commitment(amount, salt), bytes(commitment))


def generate_salt(num_bytes: int = 16) -> str:
    """Generate a random hex salt for a new bid."""
    return secrets.token_hex(num_bytes)


# =============================================================================
# Identifier Hash
# =============================================================================


def stable_hash(identifier: str) -> int:
    """
    Deterministic 64-bit hash of an identifier.

    Takes the first 8 bytes of keccak256(domain || identifier) as a
    big-endian unsigned integer.
    """
    digest = keccak256(DOMAIN_IDENTIFIER + identifier.encode("utf-8"))
    return int.from_bytes(digest[:8], byteorder="big")


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def fingerprint(self) -> str:
        """Short identifier for the public key (last 20 bytes of its keccak)."""
        return "0x" + keccak256(self.public_key)[-20:].hex()


def _point_to_bytes(point) -> bytes:
    x_bytes = point[0].to_bytes(32, byteorder="big")
    y_bytes = point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")

    # P = k * G
    public_key = _point_to_bytes(secp256k1.privtopub(private_key))
    return KeyPair(private_key=private_key, public_key=public_key)


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    return _point_to_bytes(secp256k1.privtopub(private_key))


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


__all__ = [
    "SECP256K1_ORDER",
    "COMMITMENT_SIZE",
    "keccak256",
    "compute_commitment",
    "verify_commitment",
    "generate_salt",
    "stable_hash",
    "KeyPair",
    "generate_keypair",
    "private_key_to_public_key",
    "bytes_to_hex",
    "hex_to_bytes",
]
