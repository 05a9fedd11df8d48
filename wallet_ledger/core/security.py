"""Payment gateway callback checksum helpers.

The gateway signs the raw callback body with a shared salt and sends the
hex digest in the ``X-VERIFY`` header.
"""

import hashlib
import hmac


def sign_payload(body: bytes, salt: str) -> str:
    """Compute the hex HMAC-SHA256 checksum of a callback body."""
    return hmac.new(salt.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, salt: str) -> bool:
    """Check a callback checksum.

    Args:
        body: Raw request body
        signature: Value of the X-VERIFY header
        salt: Shared gateway salt

    Returns:
        True if the signature matches
    """
    if not signature:
        return False
    expected = sign_payload(body, salt)
    return hmac.compare_digest(expected, signature)
