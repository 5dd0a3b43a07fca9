import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import onnxruntime as ort
from huggingface_hub import hf_hub_download

from .config import EXECUTION_PROVIDERS, MODEL_DIR
from .errors import ModelLoadError

log = logging.getLogger(__name__)

HF_PREFIX = "hf://"
TORCHSCRIPT_SUFFIXES = (".pt", ".ts", ".torchscript")


@dataclass(frozen=True)
class RuntimeConfig:
    """Where the worker finds model files and which runtime backends it may use."""

    model_dir: Optional[str] = MODEL_DIR
    providers: Tuple[str, ...] = EXECUTION_PROVIDERS
    intra_op_num_threads: int = 0

    @classmethod
    def from_message(cls, payload):
        payload = dict(payload or {})
        providers = payload.get("providers") or EXECUTION_PROVIDERS
        return cls(
            model_dir=payload.get("model_dir", MODEL_DIR),
            providers=tuple(providers),
            intra_op_num_threads=int(payload.get("intra_op_num_threads") or 0),
        )

    def to_message(self):
        return {
            "model_dir": self.model_dir,
            "providers": list(self.providers),
            "intra_op_num_threads": self.intra_op_num_threads,
        }


def resolve_model_reference(reference: str, runtime: RuntimeConfig) -> Path:
    if not reference:
        raise ModelLoadError("No model reference given")

    if reference.startswith(HF_PREFIX):
        parts = reference[len(HF_PREFIX):].split("/")
        if len(parts) < 3:
            raise ModelLoadError(f"Invalid Hugging Face reference: {reference}")
        repo_id, filename = "/".join(parts[:2]), "/".join(parts[2:])
        try:
            return Path(hf_hub_download(repo_id=repo_id, filename=filename, repo_type="model"))
        except Exception as e:
            raise ModelLoadError(f"Could not download {reference}: {e}") from e

    path = Path(reference).expanduser()
    if not path.is_absolute() and runtime.model_dir:
        path = Path(runtime.model_dir) / path
    if not path.exists():
        raise ModelLoadError(f"Model not found: {path}")
    return path


class OnnxDepthSession:
    """A loaded ONNX depth model."""

    def __init__(self, path: Path, runtime: RuntimeConfig):
        opts = ort.SessionOptions()
        opts.log_severity_level = 3
        if runtime.intra_op_num_threads:
            opts.intra_op_num_threads = runtime.intra_op_num_threads
        self.session = ort.InferenceSession(str(path), sess_options=opts, providers=list(runtime.providers))
        self.input_name = self.session.get_inputs()[0].name
        outputs = [o.name for o in self.session.get_outputs()]
        self.output_name = "depth" if "depth" in outputs else outputs[0]

    def run(self, tensor: np.ndarray) -> np.ndarray:
        return self.session.run([self.output_name], {self.input_name: tensor})[0]


class TorchScriptDepthSession:
    def __init__(self, path: Path, runtime: RuntimeConfig):
        import torch

        self._torch = torch
        self.device = "cuda" if torch.cuda.is_available() else "cpu"
        self.model = torch.jit.load(str(path), map_location=self.device)
        self.model.eval()

    def run(self, tensor: np.ndarray) -> np.ndarray:
        torch = self._torch
        with torch.no_grad():
            out = self.model(torch.from_numpy(tensor).to(self.device))
        return out.detach().float().cpu().numpy()


def load_session(reference: str, runtime: RuntimeConfig):
    path = resolve_model_reference(reference, runtime)
    backend = TorchScriptDepthSession if path.suffix in TORCHSCRIPT_SUFFIXES else OnnxDepthSession
    log.info("Loading depth model %s (%s)", path, backend.__name__)
    try:
        return backend(path, runtime)
    except Exception as e:
        raise ModelLoadError(f"Could not load model {path}: {e}") from e
