from typing import Optional, Tuple

from .config import (
    DEFAULT_DEPTHMAP_SIZE,
    DEFAULT_DEVICE_PIXEL_RATIO,
    DEFAULT_DISPLAY_MODE,
    DEFAULT_FOCUS,
    DEFAULT_MOUSE_X_OFFSET,
    DISPLAY_MODES,
)


class PreviewRenderer:
    """In-memory stand-in for the parallax renderer.

    Keeps the live configuration and the last loaded image/depth URLs so a
    page can draw a flat preview of them.
    """

    def __init__(self):
        self.display_mode = DEFAULT_DISPLAY_MODE
        self.focus = DEFAULT_FOCUS
        self.depthmap_size = DEFAULT_DEPTHMAP_SIZE
        self.device_pixel_ratio = DEFAULT_DEVICE_PIXEL_RATIO
        self.mouse_x_offset = DEFAULT_MOUSE_X_OFFSET
        self.loaded: Optional[Tuple[str, str]] = None
        self.load_count = 0

    def load(self, image_url, depth_url):
        self.loaded = (image_url, depth_url)
        self.load_count += 1

    def set_display_mode(self, mode):
        if mode not in DISPLAY_MODES:
            raise ValueError(f"Unsupported display mode: {mode}")
        self.display_mode = mode

    def set_focus(self, value):
        self.focus = float(value)

    def set_depthmap_size(self, size):
        self.depthmap_size = int(size)

    def set_device_pixel_ratio(self, value):
        self.device_pixel_ratio = float(value)

    def set_mouse_x_offset(self, value):
        self.mouse_x_offset = float(value)

    def get_display_mode(self):
        return self.display_mode

    def get_focus(self):
        return self.focus

    def get_depthmap_size(self):
        return self.depthmap_size

    def get_device_pixel_ratio(self):
        return self.device_pixel_ratio

    def get_mouse_x_offset(self):
        return self.mouse_x_offset

    def get_possible_display_modes(self):
        return list(DISPLAY_MODES)
