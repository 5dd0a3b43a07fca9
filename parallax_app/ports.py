"""Interfaces the viewer core talks to instead of ambient globals."""

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence

log = logging.getLogger(__name__)


class Renderer(Protocol):
    def load(self, image_url: str, depth_url: str) -> None: ...
    def set_display_mode(self, mode: str) -> None: ...
    def set_focus(self, value: float) -> None: ...
    def set_depthmap_size(self, size: int) -> None: ...
    def set_device_pixel_ratio(self, value: float) -> None: ...
    def set_mouse_x_offset(self, value: float) -> None: ...
    def get_display_mode(self) -> str: ...
    def get_focus(self) -> float: ...
    def get_depthmap_size(self) -> int: ...
    def get_device_pixel_ratio(self) -> float: ...
    def get_mouse_x_offset(self) -> float: ...
    def get_possible_display_modes(self) -> Sequence[str]: ...


class PersistenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...


class History(Protocol):
    def push(self, url: str) -> None: ...


class EventSource(Protocol):
    def subscribe(self, event: str, handler: Callable) -> None: ...
    def unsubscribe(self, event: str, handler: Callable) -> None: ...


class MemoryStore:
    def __init__(self, values: Dict[str, str] = None):
        self.values = dict(values or {})

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = str(value)


class JsonFileStore:
    """Key/value strings kept in a single JSON file, like browser local storage."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable settings file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key):
        value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key, value):
        data = self._read()
        data[key] = str(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class MemoryHistory:
    def __init__(self):
        self.entries: List[str] = []

    def push(self, url):
        self.entries.append(url)


class EventBus:
    def __init__(self):
        self._handlers = defaultdict(list)

    def subscribe(self, event, handler):
        self._handlers[event].append(handler)

    def unsubscribe(self, event, handler):
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)
