"""
Utility functions for the triage API.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of body under secret."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_hmac_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify the X-Signature of an inbound message.

    Args:
        body: Raw request body bytes
        signature: Hex-encoded signature from X-Signature header
        secret: WEBHOOK_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not secret:
        return False

    # Constant-time comparison
    is_valid = hmac.compare_digest(compute_signature(body, secret), signature.strip().lower())
    logger.debug(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")
    return is_valid
