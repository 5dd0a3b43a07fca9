import base64
import mimetypes
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote, unquote

from .config import DEFAULT_DISPLAY_MODE, DISPLAY_MODES

REMOTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
ENCODED_URL_RE = re.compile(r"^https?%3A", re.IGNORECASE)

# characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


class Origin(str, Enum):
    REMOTE_URL = "remote-url"
    LOCAL_FILE = "local-file"
    DERIVED_OBJECT_URL = "derived-object-url"
    EXAMPLE_ASSET = "example-asset"


class Provenance(str, Enum):
    USER_SUPPLIED = "user-supplied"
    GENERATED = "generated"


def data_url(payload: bytes, name: str = "", default_type: str = "image/png") -> str:
    mime = mimetypes.guess_type(name)[0] if name else None
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime or default_type};base64,{encoded}"


def is_remote_url(url: Optional[str]) -> bool:
    return bool(url) and REMOTE_URL_RE.match(url) is not None


@dataclass(frozen=True)
class ImageAsset:
    origin: Origin
    url: Optional[str] = None
    payload: Optional[bytes] = None
    name: str = ""

    @property
    def display_url(self) -> str:
        if self.origin in (Origin.REMOTE_URL, Origin.EXAMPLE_ASSET) and self.url:
            return self.url
        if self.payload is None:
            raise ValueError(f"{self.origin.value} asset has nothing to display")
        return data_url(self.payload, self.name)

    @property
    def is_remote(self) -> bool:
        return self.origin is Origin.REMOTE_URL and is_remote_url(self.url)

    @classmethod
    def from_url(cls, url: str):
        return cls(Origin.REMOTE_URL, url=url)

    @classmethod
    def from_file(cls, name: str, payload: bytes):
        return cls(Origin.LOCAL_FILE, payload=payload, name=name)


@dataclass(frozen=True)
class DepthAsset(ImageAsset):
    provenance: Provenance = Provenance.USER_SUPPLIED

    @property
    def is_generated(self) -> bool:
        return self.provenance is Provenance.GENERATED

    @classmethod
    def generated(cls, payload: bytes):
        return cls(Origin.DERIVED_OBJECT_URL, payload=payload, name="depthmap.png",
                   provenance=Provenance.GENERATED)


@dataclass(frozen=True)
class AssetPair:
    image: ImageAsset
    depth: DepthAsset

    @property
    def urls(self):
        return self.image.display_url, self.depth.display_url


def example_pair(example) -> AssetPair:
    # an example depth map is bound to its image, so it goes away with it
    return AssetPair(
        image=ImageAsset(Origin.EXAMPLE_ASSET, url=example["image"], name=example["key"]),
        depth=DepthAsset(Origin.EXAMPLE_ASSET, url=example["depthmap"], name=example["key"],
                         provenance=Provenance.GENERATED),
    )


@dataclass(frozen=True)
class ViewerParams:
    input_url: Optional[str] = None
    depthmap_url: Optional[str] = None
    display_mode: Optional[str] = None


def get_raw_param(query: str, name: str) -> Optional[str]:
    """Return the undecoded value of ``name`` in a query string, or None."""
    match = re.search(rf"[?&]{re.escape(name)}=([^&]+)", query or "", re.IGNORECASE)
    return match.group(1) if match else None


def _url_param(query: str, name: str) -> Optional[str]:
    value = get_raw_param(query, name)
    if value and ENCODED_URL_RE.match(value):
        value = unquote(value)
    return value


def parse_viewer_params(query: str, possible_modes=DISPLAY_MODES) -> ViewerParams:
    if query and not query.startswith("?"):
        query = "?" + query
    display_mode = get_raw_param(query, "displayMode")
    if display_mode is not None and display_mode not in possible_modes:
        display_mode = DEFAULT_DISPLAY_MODE
    return ViewerParams(
        input_url=_url_param(query, "input"),
        depthmap_url=_url_param(query, "depthmap"),
        display_mode=display_mode,
    )


def build_history_url(base: str, input_url: str, depthmap_url: Optional[str] = None) -> str:
    url = f"{base}?input={quote(input_url, safe=_URI_COMPONENT_SAFE)}"
    if depthmap_url:
        url += f"&depthmap={quote(depthmap_url, safe=_URI_COMPONENT_SAFE)}"
    return url
