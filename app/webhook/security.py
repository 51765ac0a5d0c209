import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def validate_signature(payload: bytes, signature_header: str, app_secret: str) -> bool:
    """Check the X-Hub-Signature-256 header Meta sends with every webhook call."""
    if not app_secret or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(app_secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.removeprefix(SIGNATURE_PREFIX))
