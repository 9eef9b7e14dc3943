"""
Input Validation - Security-focused input sanitization.

Provides validation for all external inputs to the registrar to prevent:
- Integer overflows in the balance domain
- Oversized or malformed commitments and keys
- Resource exhaustion through huge identifiers or salts
"""

from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

# Maximum sizes
PUBLIC_KEY_SIZE = 64
MAX_COMMITMENT_SIZE = 64
MAX_IDENTIFIER_LENGTH = 256
MAX_PARTY_LENGTH = 64
MAX_SALT_LENGTH = 256

# Field bounds
MIN_AMOUNT = 0
MAX_AMOUNT = 2**128 - 1
MIN_TICK = 0
MAX_TICK = 2**64 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_public_key(public_key: Any) -> Tuple[bool, str]:
    """Validate a public key."""
    return validate_bytes(public_key, "public_key", expected_length=PUBLIC_KEY_SIZE)


def validate_commitment(commitment: Any) -> Tuple[bool, str]:
    """Validate a bid commitment (non-empty, bounded)."""
    valid, err = validate_bytes(commitment, "commitment", max_length=MAX_COMMITMENT_SIZE)
    if not valid:
        return False, err
    if len(commitment) == 0:
        return False, "commitment must not be empty"
    return True, ""


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass but never a valid amount
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any) -> Tuple[bool, str]:
    """Validate a token amount."""
    return validate_integer(amount, "amount", MIN_AMOUNT, MAX_AMOUNT)


def validate_tick(tick: Any) -> Tuple[bool, str]:
    """Validate a block tick."""
    return validate_integer(tick, "tick", MIN_TICK, MAX_TICK)


def validate_period(period: Any, name: str) -> Tuple[bool, str]:
    """Validate a phase duration (strictly positive)."""
    return validate_integer(period, name, 1, MAX_TICK)


def validate_string(
    value: Any,
    name: str,
    max_length: int,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    return True, ""


def validate_identifier(identifier: Any) -> Tuple[bool, str]:
    """Validate an auctioned identifier (non-empty string)."""
    valid, err = validate_string(identifier, "identifier", MAX_IDENTIFIER_LENGTH)
    if not valid:
        return False, err
    if not identifier:
        return False, "identifier must not be empty"
    return True, ""


def validate_party(party: Any) -> Tuple[bool, str]:
    """Validate a party id (non-empty string)."""
    valid, err = validate_string(party, "party", MAX_PARTY_LENGTH)
    if not valid:
        return False, err
    if not party:
        return False, "party must not be empty"
    return True, ""


def validate_salt(salt: Any) -> Tuple[bool, str]:
    """Validate a reveal salt."""
    return validate_string(salt, "salt", MAX_SALT_LENGTH)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_public_key",
    "validate_commitment",
    "validate_integer",
    "validate_amount",
    "validate_tick",
    "validate_period",
    "validate_string",
    "validate_identifier",
    "validate_party",
    "validate_salt",
    "PUBLIC_KEY_SIZE",
    "MAX_COMMITMENT_SIZE",
    "MAX_IDENTIFIER_LENGTH",
    "MIN_AMOUNT",
    "MAX_AMOUNT",
]
