"""Pixel buffer <-> model tensor <-> depth image conversions.

Pure numpy, no I/O. The depth model takes a channel-first float tensor of
shape ``[1, 3, S, S]`` and returns raw, unnormalized depth of shape
``[1, H, W]``; these helpers bridge that contract and the RGBA images the
rest of the viewer works with.
"""

from dataclasses import dataclass

import numpy as np

from .errors import TensorShapeError


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded RGBA pixels, shape ``(height, width, 4)``, uint8."""

    data: np.ndarray
    width: int
    height: int


def preprocess(pixels, size: int) -> np.ndarray:
    """Turn an interleaved RGBA buffer of ``size x size`` into a planar float buffer.

    Alpha is dropped, samples are scaled from [0, 255] to [0, 1] and the
    result is ordered channel-major: all red samples, then all green, then
    all blue. Returns a float32 array of length ``3 * size * size``.
    """
    data = np.asarray(pixels, dtype=np.uint8).reshape(-1)
    expected = size * size * 4
    if data.size != expected:
        raise TensorShapeError(
            f"Expected {expected} RGBA samples for a {size}x{size} image, got {data.size}"
        )
    rgb = data.reshape(size * size, 4)[:, :3].astype(np.float32) / 255.0
    return np.ascontiguousarray(rgb.T).reshape(-1)


def to_input_tensor(pixels, size: int) -> np.ndarray:
    return preprocess(pixels, size).reshape(1, 3, size, size)


def postprocess(tensor) -> np.ndarray:
    """Rescale a ``[1, H, W]`` depth tensor into an opaque grayscale RGBA image.

    Values are min/max normalized over the whole frame and rounded half up
    to 0..255. A constant tensor has no range to normalize; it produces a
    black frame (alpha still 255).
    """
    values = np.asarray(tensor)
    if values.ndim != 3 or values.shape[0] != 1:
        raise TensorShapeError(f"Expected a depth tensor of shape [1, H, W], got {list(values.shape)}")

    values = values[0].astype(np.float64)
    if not np.all(np.isfinite(values)):
        raise TensorShapeError("Depth tensor contains non-finite values")

    d_min, d_max = float(values.min()), float(values.max())
    if d_max == d_min:
        depth = np.zeros(values.shape, dtype=np.uint8)
    else:
        scaled = (values - d_min) / (d_max - d_min) * 255.0
        depth = np.floor(scaled + 0.5).clip(0, 255).astype(np.uint8)

    h, w = depth.shape
    image = np.empty((h, w, 4), dtype=np.uint8)
    image[..., 0] = depth
    image[..., 1] = depth
    image[..., 2] = depth
    image[..., 3] = 255
    return image
