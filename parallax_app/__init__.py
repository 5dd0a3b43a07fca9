"""Public re-export layer so `app.py` stays tidy."""

from .assets import AssetPair, DepthAsset, ImageAsset, parse_viewer_params
from .codec import PixelBuffer, postprocess, preprocess
from .renderer import PreviewRenderer
from .resolver import AssetResolver, ResolverState
from .settings import ViewerConfig, ViewerSettings
from .share import ShareClient
from .utils import depth_colormap, format_bytes
from .worker import InferenceWorker, InProcessWorker, WorkerProcess
