import os
from pathlib import Path

import matplotlib.cm as cm

ROOT_DIR = Path(__file__).resolve().parent.parent
STATIC_DIR = ROOT_DIR / "static"
EXAMPLES_DIR = STATIC_DIR / "examples"
SETTINGS_PATH = Path(
    os.environ.get("PARALLAX_SETTINGS", Path.home() / ".config" / "depthvision" / "settings.json")
)

# full, half side-by-side, full side-by-side, red/cyan anaglyph
DISPLAY_MODES = ("full", "hsbs", "fsbs", "anaglyph")

DEFAULT_DISPLAY_MODE = "full"
DEFAULT_FOCUS = 0.25
DEFAULT_MOUSE_X_OFFSET = 0.3  # 0 disables the 3d offset in the stereo modes
DEFAULT_DEVICE_PIXEL_RATIO = 1.0
DEFAULT_DEPTHMAP_SIZE = 518  # multiple of the ViT patch size (14)

DEFAULT_MODEL_REFERENCE = os.environ.get(
    "PARALLAX_MODEL", "hf://onnx-community/depth-anything-v2-small/onnx/model.onnx"
)
MODEL_DIR = os.environ.get("PARALLAX_MODEL_DIR", str(ROOT_DIR / "checkpoints"))
EXECUTION_PROVIDERS = tuple(
    p for p in os.environ.get("PARALLAX_PROVIDERS", "CPUExecutionProvider").split(",") if p
)

RELAY_URL = os.environ.get("PARALLAX_RELAY_URL", "http://127.0.0.1:8000")
RELAY_ORIGIN = os.environ.get("PARALLAX_RELAY_ORIGIN", "https://depthvision.local")
VIEWER_BASE_URL = os.environ.get("PARALLAX_VIEWER_URL", "https://depthvision.local/")
FETCH_TIMEOUT = 30

EXAMPLE_KEYS = [
    "jungle", "portrait", "robot", "hoernchen", "wombat-on-a-lawnmower", "hotdog",
    "bernd", "cafetattoos", "beachpeace", "boardbear", "crystalmountain", "desertrace",
    "spikypizza", "bestpizza", "mrfrog", "seagulls", "snack", "rat",
]

EXAMPLE_IMAGES = [
    {
        "key": key,
        "image": f"static/examples/{key}.jpg",
        "thumb": f"static/examples/{key}_thumb.jpg",
        "depthmap": f"static/examples/{key}_depthmap.png",
    }
    for key in EXAMPLE_KEYS
]

DEPTH_COLORMAPS = {
    "Gray": cm.gray,
    "Viridis": cm.viridis,
    "Magma": cm.magma,
}
