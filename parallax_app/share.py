import logging
import mimetypes

import requests

from .assets import AssetPair, build_history_url
from .config import FETCH_TIMEOUT, RELAY_URL
from .errors import ShareError
from .utils import format_bytes

log = logging.getLogger(__name__)


class ShareClient:
    """Uploads local assets through the share relay so a pair can be linked to.

    ``session`` only needs ``post(url, data=..., files=..., headers=..., timeout=...)``;
    it defaults to a ``requests.Session`` so the relay's session cookie is kept
    between the nonce request and the upload.
    """

    def __init__(self, base_url: str = RELAY_URL, session=None, origin: str = None, timeout=FETCH_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.headers = {"Origin": origin} if origin else {}
        self.timeout = timeout

    def _post(self, data, files=None):
        try:
            response = self.session.post(
                f"{self.base_url}/api", data=data, files=files, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ShareError(f"Share relay request failed: {e}") from e

        if body.get("state") != "success":
            raise ShareError(body.get("data") or "Share relay returned an error")
        return body["data"]

    def get_share_nonce(self) -> str:
        return self._post({"action": "getShareNonce"})

    def upload_image(self, nonce: str, name: str, payload: bytes, content_type: str = None) -> str:
        content_type = content_type or mimetypes.guess_type(name)[0] or "image/png"
        url = self._post(
            {"action": "uploadImage", "shareNonce": nonce},
            files={"file": (name, payload, content_type)},
        )
        log.info("Uploaded %s (%s) to %s", name, format_bytes(len(payload)), url)
        return url.strip()

    def _public_url(self, asset, fallback_name: str) -> str:
        if asset.is_remote:
            return asset.url
        if asset.payload is None:
            raise ShareError(f"{asset.origin.value} asset cannot be shared")
        return self.upload_image(self.get_share_nonce(), asset.name or fallback_name, asset.payload)

    def share(self, pair: AssetPair, viewer_base: str) -> str:
        image_url = self._public_url(pair.image, "image.jpg")
        depth_url = self._public_url(pair.depth, "depthmap.png")
        return build_history_url(viewer_base, image_url, depth_url)
