import hashlib
import hmac

from .settings import settings


class SensitiveHash:
    """Keyed one-way hashes for values that must never be stored in clear."""

    @staticmethod
    def _key() -> bytes:
        if not settings.SECRET_KEY:
            raise RuntimeError("SECRET_KEY is not configured")
        return settings.SECRET_KEY.encode()

    @classmethod
    def hash_token(cls, raw_token: str) -> str:
        return hmac.new(cls._key(), raw_token.encode(), hashlib.sha256).hexdigest()

    @classmethod
    def hash_ip(cls, ip: str | None) -> str | None:
        if not ip:
            return None
        normalized = ip.strip().encode()
        return hashlib.sha256(cls._key() + normalized).hexdigest()
