import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt

from backoffice.core.config import settings
from backoffice.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# ─── JWT ──────────────────────────────────────────────────────────────────────

def create_access_token(subject: str, tenant_id: str, role: str, expires_minutes: int = 60) -> str:
    """Mint an access token (used by tests and service-to-service calls)."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(
        {"sub": subject, "tenant_id": tenant_id, "role": role, "exp": expire, "type": "access"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_token(token: str) -> dict:
    """Raises JWTError on invalid/expired token."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


# ─── Remote Action Tokens ─────────────────────────────────────────────────────

def get_action_token_key() -> str:
    """Return the HMAC key for remote action tokens.

    Production requires a dedicated ACTION_TOKEN_SECRET. Other environments
    fall back to JWT_SECRET with a warning.
    """
    if settings.ACTION_TOKEN_SECRET:
        return settings.ACTION_TOKEN_SECRET
    if settings.is_production:
        raise ConfigurationError(
            "ACTION_TOKEN_SECRET is required in production. "
            "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )
    logger.warning("ACTION_TOKEN_SECRET not set, using JWT_SECRET as fallback")
    return settings.JWT_SECRET


def new_token_id() -> str:
    """128 bits of randomness, hex encoded."""
    return secrets.token_hex(16)


def sign_action_token(token_id: str, entity_type: str, entity_id: str, action: str) -> str:
    """HMAC-SHA256 over the token tuple, truncated to fit chat button payloads."""
    message = f"{token_id}:{entity_type}:{entity_id}:{action}"
    digest = hmac.new(
        get_action_token_key().encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()
    return digest[: settings.ACTION_TOKEN_SIGNATURE_LENGTH]


def verify_action_token_signature(
    signature: str, token_id: str, entity_type: str, entity_id: str, action: str
) -> bool:
    expected = sign_action_token(token_id, entity_type, entity_id, action)
    return hmac.compare_digest(expected, signature)


def split_action_token(token: str) -> tuple[str, str] | None:
    """Split ``<random-hex>:<hmac-hex>``; None when the shape is wrong."""
    parts = token.strip().split(":")
    if len(parts) != 2 or not all(parts):
        return None
    token_id, signature = parts
    try:
        bytes.fromhex(token_id)
        bytes.fromhex(signature)
    except ValueError:
        return None
    return token_id, signature


# ─── Webhook signatures ───────────────────────────────────────────────────────

def verify_webhook_signature(body: bytes, signature_header: str | None, app_secret: str) -> bool:
    """Check Meta's ``X-Hub-Signature-256: sha256=<hex>`` header."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header)
