import logging
import math
from dataclasses import dataclass

from .config import (
    DEFAULT_DEPTHMAP_SIZE,
    DEFAULT_DEVICE_PIXEL_RATIO,
    DEFAULT_DISPLAY_MODE,
    DEFAULT_FOCUS,
    DEFAULT_MOUSE_X_OFFSET,
)

log = logging.getLogger(__name__)


@dataclass
class ViewerConfig:
    display_mode: str = DEFAULT_DISPLAY_MODE
    focus: float = DEFAULT_FOCUS
    mouse_x_offset: float = DEFAULT_MOUSE_X_OFFSET
    device_pixel_ratio: float = DEFAULT_DEVICE_PIXEL_RATIO
    depthmap_size: int = DEFAULT_DEPTHMAP_SIZE


def parse_persisted_number(raw, cast=float):
    """Parse a stored value; None unless it is a usable, non-zero number."""
    if raw is None:
        return None
    try:
        value = cast(float(raw)) if cast is int else cast(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value or None


class ViewerSettings:
    """Keeps the renderer's live configuration and the persistence store in step."""

    NUMERIC_KEYS = {
        "focus": float,
        "devicePixelRatio": float,
        "depthmapSize": int,
        "mouseXOffset": float,
    }
    FIELDS = {
        "focus": "focus",
        "devicePixelRatio": "device_pixel_ratio",
        "depthmapSize": "depthmap_size",
        "mouseXOffset": "mouse_x_offset",
    }
    POSITIVE_KEYS = ("devicePixelRatio", "depthmapSize")

    def __init__(self, renderer, store, config: ViewerConfig = None):
        self.renderer = renderer
        self.store = store
        self.config = config or ViewerConfig()

    def load(self) -> ViewerConfig:
        for key, cast in self.NUMERIC_KEYS.items():
            value = parse_persisted_number(self.store.get(key), cast)
            if value is not None and key in self.POSITIVE_KEYS and value < 0:
                log.warning("Ignoring negative persisted %s %r", key, value)
            elif value is not None:
                setattr(self.config, self.FIELDS[key], value)

        mode = self.store.get("displayMode")
        if mode and mode in self.renderer.get_possible_display_modes():
            self.config.display_mode = mode
        elif mode:
            log.warning("Ignoring unknown persisted display mode %r", mode)
        return self.config

    def apply(self):
        self.renderer.set_display_mode(self.config.display_mode)
        self.renderer.set_depthmap_size(self.config.depthmap_size)
        self.renderer.set_focus(self.config.focus)
        self.renderer.set_device_pixel_ratio(self.config.device_pixel_ratio)
        self.renderer.set_mouse_x_offset(self.config.mouse_x_offset)

    def set_focus(self, value):
        self.config.focus = float(value)
        self.renderer.set_focus(self.config.focus)
        self.store.set("focus", self.config.focus)

    def set_depthmap_size(self, size):
        self.config.depthmap_size = int(size)
        self.renderer.set_depthmap_size(self.config.depthmap_size)
        self.store.set("depthmapSize", self.config.depthmap_size)

    def set_device_pixel_ratio(self, value):
        self.config.device_pixel_ratio = float(value)
        self.renderer.set_device_pixel_ratio(self.config.device_pixel_ratio)
        self.store.set("devicePixelRatio", self.config.device_pixel_ratio)

    def set_mouse_x_offset(self, value):
        self.config.mouse_x_offset = float(value)
        self.renderer.set_mouse_x_offset(self.config.mouse_x_offset)
        self.store.set("mouseXOffset", self.config.mouse_x_offset)

    def set_display_mode(self, mode):
        if mode not in self.renderer.get_possible_display_modes():
            raise ValueError(f"Unsupported display mode: {mode}")
        self.config.display_mode = mode
        self.renderer.set_display_mode(mode)
        self.store.set("displayMode", mode)
