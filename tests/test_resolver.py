import asyncio
import random
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from parallax_app.assets import Origin, ViewerParams
from parallax_app.errors import DecodeError, FetchError, InferenceError
from parallax_app.ports import EventBus, MemoryHistory
from parallax_app.renderer import PreviewRenderer
from parallax_app.resolver import AssetResolver, RequestsFetcher, ResolverState
from parallax_app.settings import ViewerConfig

EXAMPLES = [
    {"key": "jungle", "image": "static/examples/jungle.jpg", "depthmap": "static/examples/jungle_depthmap.png"},
    {"key": "rat", "image": "static/examples/rat.jpg", "depthmap": "static/examples/rat_depthmap.png"},
]


def png_bytes(width=6, height=4, color=(200, 30, 30)):
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeWorker:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def infer_async(self, pixels, size, model_reference):
        self.calls.append((pixels.width, size, model_reference))
        if self.fail:
            raise InferenceError("model exploded")
        depth = np.zeros((size, size, 4), dtype=np.uint8)
        depth[..., 3] = 255
        return depth


class FakeFetcher:
    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.gates = {}
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        if url in self.gates:
            await self.gates[url].wait()
        if url not in self.responses:
            raise FetchError(url, "404 Not Found", 404)
        return self.responses[url]


def make_resolver(fetcher=None, worker=None, **kwargs):
    resolver = AssetResolver(
        PreviewRenderer(),
        worker or FakeWorker(),
        ViewerConfig(depthmap_size=8),
        fetcher=fetcher or FakeFetcher(),
        history=MemoryHistory(),
        events=EventBus(),
        examples=EXAMPLES,
        model_reference="test.onnx",
        **kwargs,
    )
    return resolver


def test_startup_with_both_urls_skips_inference():
    fetcher, worker = FakeFetcher(), FakeWorker()
    resolver = make_resolver(fetcher, worker)

    state = asyncio.run(resolver.startup(ViewerParams("https://a.com/x.jpg", "https://a.com/d.png")))

    assert state is ResolverState.IDLE
    assert resolver.renderer.loaded == ("https://a.com/x.jpg", "https://a.com/d.png")
    assert fetcher.calls == [] and worker.calls == []
    assert resolver.history.entries == []


def test_startup_with_input_only_generates_depth_once():
    fetcher = FakeFetcher({"https://a.com/x.png": png_bytes()})
    worker = FakeWorker()
    resolver = make_resolver(fetcher, worker)

    asyncio.run(resolver.startup(ViewerParams(input_url="https://a.com/x.png")))

    assert resolver.state is ResolverState.IDLE
    assert worker.calls == [(8, 8, "test.onnx")]
    assert resolver.current.depth.is_generated
    assert resolver.renderer.loaded[0] == "https://a.com/x.png"
    assert resolver.renderer.loaded[1].startswith("data:image/png;base64,")
    # restoring from the query string must not add another entry
    assert resolver.history.entries == []


def test_generated_depth_matches_source_size():
    fetcher = FakeFetcher({"https://a.com/x.png": png_bytes(10, 6)})
    resolver = make_resolver(fetcher)
    asyncio.run(resolver.startup(ViewerParams(input_url="https://a.com/x.png")))

    depth = Image.open(BytesIO(resolver.current.depth.payload))
    assert depth.size == (10, 6)


def test_startup_without_params_shows_an_example():
    fetcher, worker = FakeFetcher(), FakeWorker()
    resolver = make_resolver(fetcher, worker, rng=random.Random(3))

    asyncio.run(resolver.startup(ViewerParams()))

    pair = resolver.current
    assert pair.image.origin is Origin.EXAMPLE_ASSET
    assert pair.urls in [(e["image"], e["depthmap"]) for e in EXAMPLES]
    assert fetcher.calls == [] and worker.calls == []


def test_local_file_load_does_not_touch_history():
    resolver = make_resolver()
    resolver.select_image_file("x.png", png_bytes())
    asyncio.run(resolver.load())

    assert resolver.state is ResolverState.IDLE
    assert resolver.current.image.origin is Origin.LOCAL_FILE
    assert resolver.history.entries == []


def test_remote_load_pushes_history():
    fetcher = FakeFetcher({"https://a.com/x.png": png_bytes(), "https://a.com/d.png": png_bytes()})
    worker = FakeWorker()
    resolver = make_resolver(fetcher, worker)

    resolver.select_image_url("https://a.com/x.png")
    asyncio.run(resolver.load())
    assert resolver.history.entries == ["?input=https%3A%2F%2Fa.com%2Fx.png"]

    resolver.select_depth_url("https://a.com/d.png")
    asyncio.run(resolver.load())
    assert resolver.history.entries[-1] == "?input=https%3A%2F%2Fa.com%2Fx.png&depthmap=https%3A%2F%2Fa.com%2Fd.png"
    assert len(worker.calls) == 1


def test_user_depth_survives_new_image():
    resolver = make_resolver()
    resolver.select_depth_file("d.png", png_bytes())
    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())
    resolver.select_image_file("b.png", png_bytes(color=(0, 0, 0)))

    assert resolver.depth is not None and not resolver.depth.is_generated
    asyncio.run(resolver.load())
    assert resolver.worker.calls == []


def test_generated_depth_is_dropped_with_its_image():
    resolver = make_resolver()
    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())
    assert resolver.depth.is_generated

    resolver.select_image_file("b.png", png_bytes(color=(0, 0, 0)))
    assert resolver.depth is None
    asyncio.run(resolver.load())
    assert len(resolver.worker.calls) == 2


def test_reload_reuses_generated_depth():
    resolver = make_resolver()
    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())
    asyncio.run(resolver.load())
    assert len(resolver.worker.calls) == 1


def test_failed_load_keeps_previous_pair(caplog):
    fetcher = FakeFetcher({"https://a.com/x.png": png_bytes()})
    resolver = make_resolver(fetcher)
    resolver.select_image_url("https://a.com/x.png")
    asyncio.run(resolver.load())
    previous = resolver.current
    loads = resolver.renderer.load_count

    resolver.select_image_url("https://a.com/missing.png")
    state = asyncio.run(resolver.load())

    assert state is ResolverState.ERROR
    assert isinstance(resolver.last_error, FetchError)
    assert resolver.last_error.status_code == 404
    assert resolver.current is previous
    assert resolver.renderer.load_count == loads
    assert "Loading image failed" in caplog.text


def test_inference_failure_is_an_error_state():
    resolver = make_resolver(worker=FakeWorker(fail=True))
    resolver.select_image_file("a.png", png_bytes())
    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert "model exploded" in str(resolver.last_error)
    assert resolver.current is None


def test_load_without_image_fails():
    resolver = make_resolver()
    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert str(resolver.last_error) == "No input image selected"


def test_undecodable_image_fails():
    resolver = make_resolver()
    resolver.select_image_file("a.png", b"not an image")
    assert asyncio.run(resolver.load()) is ResolverState.ERROR


def test_latest_load_wins():
    fetcher = FakeFetcher({"https://slow/x.png": png_bytes(), "https://fast/y.png": png_bytes()})
    resolver = make_resolver(fetcher)

    async def scenario():
        fetcher.gates["https://slow/x.png"] = asyncio.Event()
        resolver.select_image_url("https://slow/x.png")
        first = asyncio.create_task(resolver.load())
        await asyncio.sleep(0)

        resolver.select_image_url("https://fast/y.png")
        await resolver.load()
        fetcher.gates["https://slow/x.png"].set()
        await first

    asyncio.run(scenario())

    assert resolver.current.image.url == "https://fast/y.png"
    assert resolver.image.url == "https://fast/y.png"
    assert resolver.renderer.loaded[0] == "https://fast/y.png"
    assert resolver.history.entries == ["?input=https%3A%2F%2Ffast%2Fy.png"]
    assert resolver.state is ResolverState.IDLE


def test_state_and_pair_events():
    resolver = make_resolver()
    states, pairs = [], []
    resolver.events.subscribe("state", states.append)
    resolver.events.subscribe("pair", pairs.append)

    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())

    assert states == [ResolverState.LOADING, ResolverState.IDLE]
    assert pairs == [resolver.current]


def test_refresh_reloads_renderer():
    resolver = make_resolver()
    resolver.refresh()
    assert resolver.renderer.load_count == 0

    asyncio.run(resolver.startup(ViewerParams("https://a.com/x.jpg", "https://a.com/d.png")))
    resolver.refresh()
    assert resolver.renderer.load_count == 2


def test_requests_fetcher_reads_local_paths(tmp_path):
    examples = tmp_path / "static" / "examples"
    examples.mkdir(parents=True)
    (examples / "x.png").write_bytes(b"abc")
    fetcher = RequestsFetcher(root=tmp_path, examples_dir=examples)
    assert asyncio.run(fetcher("static/examples/x.png")) == b"abc"
    with pytest.raises(FetchError):
        fetcher.fetch("static/examples/missing.png")


def test_drop_image_loads_immediately():
    resolver = make_resolver()
    assert asyncio.run(resolver.drop_image("dropped.png", png_bytes())) is ResolverState.IDLE
    assert resolver.current.image.name == "dropped.png"
    assert len(resolver.worker.calls) == 1


def test_restore_resolves_popped_entry_without_pushing():
    fetcher = FakeFetcher({"https://a.com/x.png": png_bytes()})
    resolver = make_resolver(fetcher)
    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())

    asyncio.run(resolver.restore(ViewerParams(input_url="https://a.com/x.png")))
    assert resolver.current.image.url == "https://a.com/x.png"
    assert resolver.history.entries == []


def test_unsubscribed_handler_is_not_called():
    resolver = make_resolver()
    seen = []
    resolver.events.subscribe("pair", seen.append)
    resolver.events.unsubscribe("pair", seen.append)
    asyncio.run(resolver.drop_image("a.png", png_bytes()))
    assert seen == []


class CrashingWorker(FakeWorker):
    async def infer_async(self, pixels, size, model_reference):
        raise RuntimeError("segfault in disguise")


def test_oversized_image_is_an_error_state(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    resolver = make_resolver()
    resolver.select_image_file("huge.png", png_bytes(20, 20))

    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert isinstance(resolver.last_error, DecodeError)
    assert resolver.worker.calls == []


def test_invalid_depthmap_size_is_an_error_state():
    resolver = make_resolver()
    resolver.config.depthmap_size = -5
    resolver.select_image_file("a.png", png_bytes())

    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert isinstance(resolver.last_error, DecodeError)


def test_unexpected_exception_is_an_error_state(caplog):
    resolver = make_resolver(worker=CrashingWorker())
    resolver.select_image_file("a.png", png_bytes())

    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert isinstance(resolver.last_error, RuntimeError)
    assert "Unexpected failure while loading image" in caplog.text


@pytest.mark.parametrize("make_url", [
    lambda secret: str(secret),
    lambda secret: "static/examples/../../secret.png",
])
def test_fetcher_refuses_paths_outside_examples(tmp_path, make_url):
    root = tmp_path / "site"
    examples = root / "static" / "examples"
    examples.mkdir(parents=True)
    secret = tmp_path / "secret.png"
    secret.write_bytes(png_bytes())
    worker = FakeWorker()
    resolver = make_resolver(RequestsFetcher(root=root, examples_dir=examples), worker)

    state = asyncio.run(resolver.startup(ViewerParams(input_url=make_url(secret))))

    assert state is ResolverState.ERROR
    assert isinstance(resolver.last_error, FetchError)
    assert resolver.current is None
    assert worker.calls == []


def test_remove_image_leaves_nothing_to_load():
    resolver = make_resolver()
    resolver.select_image_file("a.png", png_bytes())
    asyncio.run(resolver.load())
    shown = resolver.current

    resolver.remove_image()
    assert resolver.image is None and resolver.depth is None
    assert asyncio.run(resolver.load()) is ResolverState.ERROR
    assert resolver.current is shown
