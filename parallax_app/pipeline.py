from io import BytesIO

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .codec import PixelBuffer
from .errors import DecodeError

DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def open_image(payload: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(payload))
        image.load()
    except DECODE_ERRORS as e:
        raise DecodeError(f"Could not decode image: {e}") from e
    return image


def decode_to_pixels(payload: bytes, size: int):
    """Decode image bytes and stretch them onto a ``size x size`` RGBA canvas.

    Returns the pixel buffer together with the source ``(width, height)`` so
    the generated depth map can be scaled back to the image it belongs to.
    """
    if size <= 0:
        raise DecodeError(f"Invalid depth map size: {size}")
    image = open_image(payload)
    source_size = image.size
    try:
        canvas = image.convert("RGBA").resize((size, size), Image.BILINEAR)
    except DECODE_ERRORS as e:
        raise DecodeError(f"Could not resize image: {e}") from e
    data = np.asarray(canvas, dtype=np.uint8)
    return PixelBuffer(data=data, width=size, height=size), source_size


def encode_depth_png(depth_rgba: np.ndarray, target_size=None) -> bytes:
    try:
        if target_size is not None and tuple(target_size) != (depth_rgba.shape[1], depth_rgba.shape[0]):
            depth_rgba = cv2.resize(depth_rgba, tuple(target_size), interpolation=cv2.INTER_LINEAR)
        ok, enc = cv2.imencode(".png", cv2.cvtColor(depth_rgba, cv2.COLOR_RGBA2BGRA))
    except cv2.error as e:
        raise DecodeError(f"Could not encode depth map: {e}") from e
    if not ok:
        raise DecodeError("Could not encode depth map")
    return enc.tobytes()
