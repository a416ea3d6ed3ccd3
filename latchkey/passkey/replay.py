"""Signature counter replay guard.

Authenticators that implement counters must report a strictly larger
value on every assertion. Authenticators that never count report zero
forever; those get no counter expectation at all.
"""

from latchkey.passkey.records import CredentialRecord


def build_expected_counter(stored: int) -> int | None:
    """Counter expectation to hand to the verifier.

    Returns:
        ``stored`` when it is positive (the new counter must exceed it),
        ``None`` when it is zero (no expectation enforced)
    """
    if stored < 0:
        raise ValueError(f"signature counter cannot be negative: {stored}")
    return stored if stored > 0 else None


def record_counter(credential: CredentialRecord, new_counter: int) -> None:
    """Overwrite the stored counter with the verifier's value, even zero."""
    credential.sign_count = new_counter
