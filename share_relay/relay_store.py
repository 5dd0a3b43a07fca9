import hmac
import logging
import os
import secrets
import threading
import time

import requests

from .config import MAX_NONCES, NONCE_TTL, RelaySettings

log = logging.getLogger(__name__)


def success(data):
    return {"state": "success", "data": data}


def error(message):
    return {"state": "error", "data": message}


class ShareNonceStore:
    """Server-side share nonces, one per relay session, each usable once.

    Nonces expire after ``ttl`` seconds and at most ``max_entries`` sessions
    are tracked; the oldest are dropped first.
    """

    def __init__(self, ttl: float = NONCE_TTL, max_entries: int = MAX_NONCES, clock=time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._nonces = {}  # session id -> (nonce, issued at), oldest first

    def _purge(self, now):
        while self._nonces:
            session_id, (_, issued) = next(iter(self._nonces.items()))
            if now - issued <= self.ttl:
                break
            del self._nonces[session_id]

    def issue(self, session_id: str) -> str:
        nonce = secrets.token_hex(32)
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._nonces.pop(session_id, None)
            self._nonces[session_id] = (nonce, now)
            while len(self._nonces) > self.max_entries:
                del self._nonces[next(iter(self._nonces))]
        return nonce

    def consume(self, session_id: str, nonce) -> bool:
        if not nonce:
            return False
        with self._lock:
            self._purge(self._clock())
            entry = self._nonces.get(session_id)
            if entry is None or not hmac.compare_digest(entry[0].encode(), str(nonce).encode()):
                return False
            del self._nonces[session_id]
            return True

    def __len__(self):
        with self._lock:
            return len(self._nonces)


def upload_size(upload) -> int:
    size = getattr(upload, "size", None)
    if size is not None:
        return size
    fh = upload.file
    pos = fh.tell()
    fh.seek(0, os.SEEK_END)
    size = fh.tell()
    fh.seek(pos)
    return size


class UploadRelay:
    def __init__(self, settings: RelaySettings, nonces: ShareNonceStore = None, http=None):
        self.settings = settings
        if nonces is None:
            nonces = ShareNonceStore(settings.nonce_ttl, settings.max_nonces)
        self.nonces = nonces
        self.http = http or requests

    def get_share_nonce(self, session_id: str):
        return success(self.nonces.issue(session_id))

    def upload_image(self, session_id: str, nonce, upload):
        if not self.nonces.consume(session_id, nonce):
            return error("Invalid nonce")
        if upload is None or not getattr(upload, "filename", None):
            return error("No file uploaded")
        if upload_size(upload) > self.settings.max_upload_bytes:
            return error("File too large")
        if upload.content_type not in self.settings.allowed_types:
            return error("Invalid file type")
        return self.forward(upload)

    def forward(self, upload):
        upload.file.seek(0)
        try:
            response = self.http.post(
                self.settings.upstream_url,
                data={"reqtype": "fileupload"},
                files={"fileToUpload": (upload.filename, upload.file, upload.content_type)},
                timeout=self.settings.upstream_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            status = e.response.status_code if e.response is not None else 0
            log.warning("Upstream upload of %s failed: %s", upload.filename, e)
            return error(f"Error uploading file to catbox. HTTP Code: {status}, Error: {e}")

        log.info("Relayed %s (%s) upstream", upload.filename, upload.content_type)
        return success(response.text)
