import streamlit as st

from .assets import Origin, is_remote_url
from .config import ROOT_DIR
from .utils import depth_colormap

# --- "DepthVision" Brand Palette ---
PRIMARY_COLOR = "#5C6B7F"
TEXT_COLOR = "#1E293B"
BACKGROUND_COLOR = "#F8FAFC"
BORDER_COLOR = "#E2E8F0"


def show_asset(asset, caption: str, cmap_name: str = None):
    """Draw an image or depth asset, wherever its bytes live."""
    if asset.payload is not None:
        if cmap_name:
            st.image(depth_colormap(asset.payload, cmap_name), caption=caption, use_container_width=True)
        else:
            st.image(asset.payload, caption=caption, use_container_width=True)
    elif asset.origin is Origin.EXAMPLE_ASSET:
        path = ROOT_DIR / asset.url
        if path.exists():
            st.image(str(path), caption=caption, use_container_width=True)
        else:
            st.warning(f"{caption}: example file {asset.url} is missing")
    elif is_remote_url(asset.url):
        st.image(asset.url, caption=caption, use_container_width=True)
    else:
        st.warning(f"{caption}: only http(s) URLs can be shown")


def inject_custom_css():
    """Injects the DepthVision brand theme."""
    st.markdown(f"""
    <style>
        .main {{
            background-color: {BACKGROUND_COLOR};
        }}
        h1, h2, h3, h4, h5, h6 {{
            color: {TEXT_COLOR} !important;
        }}
        .card {{
            background-color: #FFFFFF;
            border: 1px solid {BORDER_COLOR};
            border-radius: 0.75rem;
            padding: 1.5rem;
            margin-bottom: 1.5rem;
        }}
        .stButton > button {{
            background-color: {PRIMARY_COLOR};
            color: white;
            border-radius: 0.5rem;
            border: none;
        }}
        .stButton > button:hover {{
            background-color: #4A5568;
            color: white;
        }}
    </style>
    """, unsafe_allow_html=True)
