"""One-time challenge generation.

Challenges are opaque URL-safe tokens. Clients base64url-decode them
and hand the raw bytes to ``navigator.credentials.create()/get()``.
"""

import secrets

# 32 bytes = 256 bits of entropy
DEFAULT_CHALLENGE_BYTES = 32


def generate_challenge(num_bytes: int = DEFAULT_CHALLENGE_BYTES) -> str:
    """Generate a cryptographically secure, unpadded base64url challenge.

    Args:
        num_bytes: Raw entropy bytes (at least 32)

    Returns:
        Base64url token without ``=`` padding (43 chars for 32 bytes)

    Raises:
        ValueError: If fewer than 32 bytes are requested
    """
    if num_bytes < DEFAULT_CHALLENGE_BYTES:
        raise ValueError(f"challenge needs at least {DEFAULT_CHALLENGE_BYTES} bytes, got {num_bytes}")
    return secrets.token_urlsafe(num_bytes)
