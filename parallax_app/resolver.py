"""Decides which image and depth map are active and when depth is generated.

The resolver owns the user's current selections (an input image and,
optionally, a depth map) and the pair last handed to the renderer. Loads run
on asyncio; every load takes a token and only the most recent one may publish
or change state, so a slow response can never overwrite a newer one.
"""

import asyncio
import dataclasses
import logging
import random
from enum import Enum
from pathlib import Path
from typing import Optional

import requests

from .assets import AssetPair, DepthAsset, ImageAsset, ViewerParams, build_history_url, example_pair, is_remote_url
from .config import DEFAULT_MODEL_REFERENCE, EXAMPLE_IMAGES, EXAMPLES_DIR, FETCH_TIMEOUT, ROOT_DIR
from .errors import FetchError, ParallaxError
from .pipeline import decode_to_pixels, encode_depth_png
from .ports import EventBus, MemoryHistory

log = logging.getLogger(__name__)


class ResolverState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


class RequestsFetcher:
    """Fetches remote URLs with requests and bundled example paths from disk.

    Relative paths are resolved against ``root`` and must land inside
    ``examples_dir``; any other local path is refused.
    """

    def __init__(self, timeout=FETCH_TIMEOUT, root: Path = ROOT_DIR, examples_dir: Path = EXAMPLES_DIR, session=None):
        self.timeout = timeout
        self.root = Path(root)
        self.examples_dir = Path(examples_dir).resolve()
        self.session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        if not is_remote_url(url):
            path = (self.root / url).resolve()
            if not path.is_relative_to(self.examples_dir):
                raise FetchError(url, "only http(s) URLs and bundled examples can be loaded")
            try:
                return path.read_bytes()
            except OSError as e:
                raise FetchError(url, str(e)) from e

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            raise FetchError(url, str(e), e.response.status_code) from e
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        return response.content

    async def __call__(self, url: str) -> bytes:
        return await asyncio.to_thread(self.fetch, url)


class AssetResolver:
    def __init__(
        self,
        renderer,
        worker,
        config,
        *,
        fetcher=None,
        history=None,
        events=None,
        examples=EXAMPLE_IMAGES,
        model_reference: str = DEFAULT_MODEL_REFERENCE,
        base_url: str = "",
        rng: random.Random = None,
    ):
        self.renderer = renderer
        self.worker = worker
        self.config = config
        self.fetcher = fetcher or RequestsFetcher()
        self.history = history or MemoryHistory()
        self.events = events or EventBus()
        self.examples = list(examples)
        self.model_reference = model_reference
        self.base_url = base_url
        self.rng = rng or random.Random()

        self.state = ResolverState.IDLE
        self.last_error: Optional[Exception] = None
        self.current: Optional[AssetPair] = None
        self.image: Optional[ImageAsset] = None
        self.depth: Optional[DepthAsset] = None
        self._latest = 0

    # ── selections ────────────────────────────────────────────────

    def select_image(self, asset: Optional[ImageAsset]):
        self.image = asset
        if self.depth is not None and self.depth.is_generated:
            self.depth = None

    def select_image_file(self, name: str, payload: bytes):
        self.select_image(ImageAsset.from_file(name, payload))

    def select_image_url(self, url: str):
        self.select_image(ImageAsset.from_url(url))

    def select_depth_file(self, name: str, payload: bytes):
        self.depth = DepthAsset.from_file(name, payload)

    def select_depth_url(self, url: str):
        self.depth = DepthAsset.from_url(url)

    def remove_image(self):
        self.select_image(None)

    def remove_depth(self):
        self.depth = None

    # ── resolution ────────────────────────────────────────────────

    async def startup(self, params: ViewerParams) -> ResolverState:
        return await self._resolve_params(params)

    async def restore(self, params: ViewerParams) -> ResolverState:
        """Re-resolve the parameters of a popped history entry."""
        return await self._resolve_params(params)

    async def load(self) -> ResolverState:
        return await self._load(push_history=True)

    async def drop_image(self, name: str, payload: bytes) -> ResolverState:
        self.select_image_file(name, payload)
        return await self.load()

    def refresh(self):
        if self.current is not None:
            self.renderer.load(*self.current.urls)

    async def _resolve_params(self, params: ViewerParams) -> ResolverState:
        if params.input_url and params.depthmap_url:
            self._next_token()
            pair = AssetPair(ImageAsset.from_url(params.input_url), DepthAsset.from_url(params.depthmap_url))
            self.image, self.depth = pair.image, pair.depth
            self._publish(pair)
            self._set_state(ResolverState.IDLE)
        elif params.input_url:
            self.image, self.depth = ImageAsset.from_url(params.input_url), None
            await self._load(push_history=False)
        else:
            self._next_token()
            pair = example_pair(self.rng.choice(self.examples))
            self.image, self.depth = pair.image, pair.depth
            self._publish(pair)
            self._set_state(ResolverState.IDLE)
        return self.state

    async def _load(self, push_history: bool) -> ResolverState:
        token = self._next_token()
        source_image, source_depth = self.image, self.depth
        self._set_state(ResolverState.LOADING)

        try:
            pair = await self._resolve_pair(source_image, source_depth)
        except ParallaxError as e:
            return self._fail(token, e)
        except Exception as e:
            log.exception("Unexpected failure while loading image")
            return self._fail(token, e)

        if token != self._latest:
            log.info("Dropping result of superseded load #%d", token)
            return self.state

        if self.image is source_image:
            self.image = pair.image
            if self.depth is source_depth:
                self.depth = pair.depth
        self._publish(pair)
        if push_history:
            self._push_history(pair)
        self._set_state(ResolverState.IDLE)
        return self.state

    def _fail(self, token: int, error: Exception) -> ResolverState:
        if token != self._latest:
            log.info("Dropping failure of superseded load #%d: %s", token, error)
            return self.state
        log.warning("Loading image failed: %s", error)
        self._set_state(ResolverState.ERROR, error)
        return self.state

    async def _resolve_pair(self, image, depth) -> AssetPair:
        if image is None:
            raise ParallaxError("No input image selected")

        image = await self._materialize(image)
        if depth is None:
            depth = await self._generate_depth(image)
        elif not depth.is_generated:
            depth = await self._materialize(depth)
        return AssetPair(image, depth)

    async def _materialize(self, asset):
        if asset.payload is not None:
            return asset
        return dataclasses.replace(asset, payload=await self.fetcher(asset.url))

    async def _generate_depth(self, image: ImageAsset) -> DepthAsset:
        size = self.config.depthmap_size
        pixels, source_size = await asyncio.to_thread(decode_to_pixels, image.payload, size)
        depth_rgba = await self.worker.infer_async(pixels, size, self.model_reference)
        png = await asyncio.to_thread(encode_depth_png, depth_rgba, source_size)
        return DepthAsset.generated(png)

    # ── side effects ──────────────────────────────────────────────

    def _next_token(self) -> int:
        self._latest += 1
        return self._latest

    def _set_state(self, state: ResolverState, error: Exception = None):
        self.state = state
        self.last_error = error
        self.events.emit("state", state)

    def _publish(self, pair: AssetPair):
        self.current = pair
        self.renderer.load(*pair.urls)
        self.events.emit("pair", pair)

    def _push_history(self, pair: AssetPair):
        if not pair.image.is_remote:
            return
        depth_url = pair.depth.url if pair.depth.is_remote else None
        self.history.push(build_history_url(self.base_url, pair.image.url, depth_url))
