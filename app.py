import asyncio
from urllib.parse import urlencode

import streamlit as st

from parallax_app import (
    AssetResolver,
    PreviewRenderer,
    ResolverState,
    ShareClient,
    ViewerSettings,
    WorkerProcess,
    parse_viewer_params,
)
from parallax_app.config import (
    DEPTH_COLORMAPS,
    RELAY_ORIGIN,
    RELAY_URL,
    SETTINGS_PATH,
    VIEWER_BASE_URL,
)
from parallax_app.errors import ShareError
from parallax_app.model import RuntimeConfig
from parallax_app.ports import JsonFileStore
from parallax_app.ui_components import inject_custom_css, show_asset

# --- Page Configuration ---
st.set_page_config(
    page_title="DepthVision Parallax",
    layout="wide",
    page_icon="🌊",
    initial_sidebar_state="expanded"
)
inject_custom_css()


@st.cache_resource(show_spinner="🔌 Starting inference worker …")
def start_worker():
    worker = WorkerProcess().start()
    worker.init(RuntimeConfig())
    return worker


class QueryParamsHistory:
    """Records loaded remote sources in the page's query string."""

    def push(self, url):
        params = parse_viewer_params(url.split("?", 1)[-1])
        values = {"input": params.input_url}
        if params.depthmap_url:
            values["depthmap"] = params.depthmap_url
        st.query_params.from_dict(values)


def init_session_state():
    if "resolver" in st.session_state:
        return
    renderer = PreviewRenderer()
    settings = ViewerSettings(renderer, JsonFileStore(SETTINGS_PATH))
    settings.load()

    params = parse_viewer_params(urlencode(st.query_params.to_dict()), renderer.get_possible_display_modes())
    if params.display_mode:
        settings.config.display_mode = params.display_mode
    settings.apply()

    resolver = AssetResolver(renderer, start_worker(), settings.config, history=QueryParamsHistory())
    asyncio.run(resolver.startup(params))
    st.session_state.update(resolver=resolver, settings=settings, renderer=renderer)


init_session_state()
resolver = st.session_state.resolver
settings = st.session_state.settings

# --- Sidebar ---
with st.sidebar:
    st.title("DepthVision Parallax")
    st.markdown("---")

    with st.expander("INPUT", expanded=True):
        image_file = st.file_uploader("Image", type=["png", "jpg", "jpeg", "webp", "gif"])
        image_url = st.text_input("…or image URL")
        depth_file = st.file_uploader("Depth map (optional)", type=["png", "jpg", "jpeg", "webp"])
        depth_url = st.text_input("…or depth map URL")

    with st.expander("VIEW SETTINGS", expanded=True):
        modes = st.session_state.renderer.get_possible_display_modes()
        mode = st.selectbox("Display mode", modes, index=modes.index(settings.config.display_mode))
        if mode != settings.config.display_mode:
            settings.set_display_mode(mode)
            resolver.refresh()

        focus = st.slider("Focus", 0.0, 1.0, float(settings.config.focus), 0.05)
        if focus != settings.config.focus:
            settings.set_focus(focus)

        offset = st.slider("Mouse X offset", 0.0, 1.0, float(settings.config.mouse_x_offset), 0.05)
        if offset != settings.config.mouse_x_offset:
            settings.set_mouse_x_offset(offset)

        ratio = st.slider("Device pixel ratio", 0.5, 3.0, float(settings.config.device_pixel_ratio), 0.25)
        if ratio != settings.config.device_pixel_ratio:
            settings.set_device_pixel_ratio(ratio)

        size = st.slider("Depth map resolution", 252, 1022, min(max(int(settings.config.depthmap_size), 252), 1022), 14)
        if size != settings.config.depthmap_size:
            settings.set_depthmap_size(size)

        colormap = st.selectbox("Depth preview colors", list(DEPTH_COLORMAPS.keys()))

    st.markdown("---")
    if st.button("Load 3D Image", type="primary", use_container_width=True):
        if image_file is not None:
            resolver.select_image_file(image_file.name, image_file.getvalue())
        elif image_url:
            resolver.select_image_url(image_url)
        if depth_file is not None:
            resolver.select_depth_file(depth_file.name, depth_file.getvalue())
        elif depth_url:
            resolver.select_depth_url(depth_url)
        with st.spinner("Estimating depth …"):
            asyncio.run(resolver.load())

    remove_image_col, remove_depth_col = st.columns(2)
    if remove_image_col.button("Remove image", use_container_width=True):
        resolver.remove_image()
    if remove_depth_col.button("Remove depth map", use_container_width=True):
        resolver.remove_depth()

# --- Main Content ---
if resolver.state is ResolverState.ERROR:
    st.error(f"Could not load image: {resolver.last_error}")

pair = resolver.current
if pair is None:
    st.info("Pick an image to get started")
    st.stop()

left_col, right_col = st.columns(2, gap="large")
with left_col:
    show_asset(pair.image, "Image")
with right_col:
    show_asset(pair.depth, "Depth map", colormap)

if st.button("Share"):
    client = ShareClient(RELAY_URL, origin=RELAY_ORIGIN)
    try:
        st.code(client.share(pair, VIEWER_BASE_URL))
    except ShareError as e:
        st.error(str(e))
