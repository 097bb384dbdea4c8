import hashlib
import uuid


def generate_confirmation_token() -> str:
    """Opaque, single-use confirmation token handed to the caller once."""
    return str(uuid.uuid4())


def hash_confirmation_token(token: str) -> str:
    """Hash a confirmation token using SHA256. Only the hash is persisted."""
    return hashlib.sha256(token.encode()).hexdigest()
