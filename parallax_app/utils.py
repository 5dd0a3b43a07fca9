from io import BytesIO

import numpy as np
from PIL import Image

from .config import DEPTH_COLORMAPS


def depth_colormap(depth_png: bytes, cmap_name: str = "Gray") -> np.ndarray:
    depth = np.asarray(Image.open(BytesIO(depth_png)).convert("L"), dtype="float32")
    if np.isclose(depth.max(), depth.min()):
        return np.zeros((*depth.shape, 3), dtype="uint8")
    cmap = DEPTH_COLORMAPS[cmap_name]
    norm = (depth - depth.min()) / (depth.max() - depth.min())
    return (cmap(norm)[:, :, :3] * 255).astype("uint8")


def format_bytes(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"
