import os
from dataclasses import dataclass

UPSTREAM_URL = "https://catbox.moe/user/api.php"
MAX_UPLOAD_BYTES = 200 * 1024 * 1024
ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp", "image/avif", "image/gif")
SESSION_COOKIE = "relay_session"
NONCE_TTL = 1440.0  # seconds, same as PHP's session.gc_maxlifetime
MAX_NONCES = 10_000


@dataclass(frozen=True)
class RelaySettings:
    allowed_origin: str = "https://depthvision.local"
    upstream_url: str = UPSTREAM_URL
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    upstream_timeout: float = 60.0
    allowed_types: tuple = ALLOWED_TYPES
    nonce_ttl: float = NONCE_TTL
    max_nonces: int = MAX_NONCES

    @classmethod
    def from_env(cls):
        return cls(
            allowed_origin=os.environ.get("RELAY_ALLOWED_ORIGIN", cls.allowed_origin),
            upstream_url=os.environ.get("RELAY_UPSTREAM_URL", UPSTREAM_URL),
            max_upload_bytes=int(os.environ.get("RELAY_MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES)),
            upstream_timeout=float(os.environ.get("RELAY_UPSTREAM_TIMEOUT", cls.upstream_timeout)),
            nonce_ttl=float(os.environ.get("RELAY_NONCE_TTL", NONCE_TTL)),
            max_nonces=int(os.environ.get("RELAY_MAX_NONCES", MAX_NONCES)),
        )
