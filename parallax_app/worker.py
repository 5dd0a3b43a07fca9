"""Depth inference behind a message-passing boundary.

``InferenceWorker`` is the message handler; ``WorkerProcess`` runs it in a
separate process so heavy tensor work never blocks the interactive side, and
``InProcessWorker`` exposes the same client API without a process.

Messages::

    {"type": "init", "runtime_paths": {...}}                       -> no reply
    {"image_data": PixelBuffer, "size": S, "model_reference": ref} -> {"processed_image_data": ndarray}
                                                                   or {"error": "..."}
"""

import asyncio
import logging
import multiprocessing as mp
import threading

import numpy as np

from .codec import PixelBuffer, postprocess, to_input_tensor
from .errors import InferenceError
from .model import RuntimeConfig, load_session

log = logging.getLogger(__name__)

NOT_INITIALIZED = "Worker not initialized"


class WorkerContext:
    """State created by ``init``; caches one session per model reference."""

    def __init__(self, runtime: RuntimeConfig, session_loader=load_session):
        self.runtime = runtime
        self._session_loader = session_loader
        self._session = None
        self._model_reference = None

    def session_for(self, model_reference: str):
        if self._session is None or model_reference != self._model_reference:
            self._session = self._session_loader(model_reference, self.runtime)
            self._model_reference = model_reference
        return self._session

    def infer(self, pixels, size: int, model_reference: str) -> np.ndarray:
        data = pixels.data if isinstance(pixels, PixelBuffer) else pixels
        tensor = to_input_tensor(data, size)
        session = self.session_for(model_reference)
        return postprocess(session.run(tensor))


def _is_init(message) -> bool:
    return isinstance(message, dict) and message.get("type") == "init"


class InferenceWorker:
    def __init__(self, session_loader=load_session):
        self._session_loader = session_loader
        self.context = None

    def handle(self, message):
        try:
            return self._handle(message)
        except Exception as e:
            log.warning("Worker request failed: %s", e)
            if _is_init(message):
                # init has no reply; keep the previous context
                return None
            return {"error": str(e) or type(e).__name__}

    def _handle(self, message):
        if not isinstance(message, dict):
            raise TypeError(f"Unsupported message: {type(message).__name__}")

        if _is_init(message):
            runtime = RuntimeConfig.from_message(message.get("runtime_paths"))
            self.context = WorkerContext(runtime, self._session_loader)
            return None

        if self.context is None:
            return {"error": NOT_INITIALIZED}

        depth = self.context.infer(
            message["image_data"], int(message["size"]), message["model_reference"]
        )
        return {"processed_image_data": depth}


def _serve(conn, session_loader):
    worker = InferenceWorker(session_loader)
    while True:
        try:
            message = conn.recv()
        except EOFError:
            break
        if message is None:
            break
        reply = worker.handle(message)
        if reply is not None:
            conn.send(reply)
    conn.close()


class _WorkerClient:
    def request(self, message):
        raise NotImplementedError

    def init(self, runtime: RuntimeConfig = None):
        runtime = runtime or RuntimeConfig()
        self.request({"type": "init", "runtime_paths": runtime.to_message()})

    def infer(self, pixels: PixelBuffer, size: int, model_reference: str) -> np.ndarray:
        reply = self.request({"image_data": pixels, "size": size, "model_reference": model_reference})
        if "error" in reply:
            raise InferenceError(reply["error"])
        return reply["processed_image_data"]

    async def infer_async(self, pixels: PixelBuffer, size: int, model_reference: str) -> np.ndarray:
        return await asyncio.to_thread(self.infer, pixels, size, model_reference)


class InProcessWorker(_WorkerClient):
    def __init__(self, session_loader=load_session):
        self.worker = InferenceWorker(session_loader)
        self._lock = threading.Lock()

    def request(self, message):
        with self._lock:
            return self.worker.handle(message)


class WorkerProcess(_WorkerClient):
    """Client for an ``InferenceWorker`` living in its own process.

    Requests are serialized: a second caller waits until the in-flight
    round-trip has completed.
    """

    def __init__(self, session_loader=load_session, start_method: str = None):
        self._mp = mp.get_context(start_method)
        self._session_loader = session_loader
        self._lock = threading.Lock()
        self._conn = None
        self._process = None

    def start(self):
        if self.is_alive():
            return self
        parent_conn, child_conn = self._mp.Pipe()
        self._process = self._mp.Process(
            target=_serve,
            args=(child_conn, self._session_loader),
            name="depth-inference-worker",
            daemon=True,
        )
        self._process.start()
        child_conn.close()
        self._conn = parent_conn
        log.info("Started inference worker (pid %s)", self._process.pid)
        return self

    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def request(self, message):
        if self._conn is None:
            raise InferenceError("Worker process not started")
        expects_reply = not _is_init(message)
        with self._lock:
            try:
                self._conn.send(message)
                return self._conn.recv() if expects_reply else None
            except (EOFError, OSError) as e:
                raise InferenceError(f"Inference worker is gone: {e}") from e

    def close(self, timeout: float = 5.0):
        if self._process is None:
            return
        with self._lock:
            try:
                self._conn.send(None)
            except OSError as e:
                log.debug("Worker pipe already closed: %s", e)
            self._conn.close()
        self._process.join(timeout)
        if self._process.is_alive():
            self._process.terminate()
            self._process.join()
        log.info("Stopped inference worker")
        self._process = self._conn = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.close()
