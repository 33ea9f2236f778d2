"""
Secret hashing utilities.

API key secrets are stored only as salted one-way hashes.
"""

import secrets
from passlib.context import CryptContext
from backend.app.core.config import settings

# pbkdf2 has no input length cap, unlike bcrypt's 72 bytes
key_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_api_key_secret() -> str:
    """Generate a new plaintext API key: configured prefix + 64 hex chars."""
    return f"{settings.api_key_prefix}{secrets.token_hex(32)}"


def hash_secret(secret: str) -> str:
    return key_context.hash(secret)


def verify_secret(secret: str, hashed: str) -> bool:
    """Constant-time comparison of a plaintext secret against a stored hash."""
    try:
        return key_context.verify(secret, hashed)
    except ValueError:
        # Malformed stored hash never matches
        return False
