"""Exception types raised by the viewer pipeline."""


class ParallaxError(Exception):
    """Base class for every error the viewer surfaces."""


class FetchError(ParallaxError):
    def __init__(self, url, message, status_code=None):
        self.url = url
        self.status_code = status_code
        detail = f"HTTP {status_code}: {message}" if status_code else message
        super().__init__(f"Could not fetch {url} ({detail})")


class DecodeError(ParallaxError):
    pass


class InferenceError(ParallaxError):
    pass


class ModelLoadError(InferenceError):
    pass


class TensorShapeError(InferenceError, ValueError):
    pass


class ShareError(ParallaxError):
    pass
