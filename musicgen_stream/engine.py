"""
Inference engine boundary.

Every model (text encoder, decoder, audio codec) is driven through the same
narrow interface: named input tensors in, named output tensors out. The ONNX
Runtime implementation is the production engine; the Mock engines produce
deterministic tensors with the right names and shapes so the decode loop,
cache and audio path can be exercised without model files.

Install: pip install onnxruntime
"""

import logging
from pathlib import Path
from typing import List

import numpy as np

from .config import MusicGenConfig
from .core.kv_cache import CacheRole, past_key_name, present_key_name
from .core.step_io import InferenceEngine, NamedTensors
from .errors import ContractViolation

logger = logging.getLogger(__name__)

__all__ = [
    "InferenceEngine",
    "OnnxInferenceEngine",
    "MockDecoderEngine",
    "MockAudioCodecEngine",
    "MockTextEncoderEngine",
]


class OnnxInferenceEngine:
    """
    ONNX Runtime session wrapper.

    Example:
        engine = OnnxInferenceEngine("decoder_model_merged.onnx")
        outputs = engine.run({"input_ids": ids, ...})
    """

    def __init__(
        self,
        path: str | Path,
        providers: List[str] | None = None,
        intra_op_num_threads: int | None = None,
    ):
        try:
            import onnxruntime
        except ImportError:
            raise ImportError("onnxruntime not installed. Run: pip install onnxruntime")

        options = onnxruntime.SessionOptions()
        options.graph_optimization_level = onnxruntime.GraphOptimizationLevel.ORT_ENABLE_ALL
        if intra_op_num_threads:
            options.intra_op_num_threads = intra_op_num_threads

        self.path = Path(path)
        self.session = onnxruntime.InferenceSession(
            str(self.path),
            sess_options=options,
            providers=providers or ["CPUExecutionProvider"],
        )
        self.input_names = [i.name for i in self.session.get_inputs()]
        self.output_names = [o.name for o in self.session.get_outputs()]
        logger.info("Loaded %s (%d inputs, %d outputs)",
                    self.path.name, len(self.input_names), len(self.output_names))

    def run(self, inputs: NamedTensors) -> NamedTensors:
        unknown = set(inputs) - set(self.input_names)
        if unknown:
            raise ContractViolation(f"{self.path.name} has no inputs named {sorted(unknown)}")
        values = self.session.run(self.output_names, inputs)
        return dict(zip(self.output_names, values))


class MockDecoderEngine:
    """
    Deterministic MusicGen decoder stand-in.

    Step s puts the logits peak for row r on token ``(s * N + r % N) % vocab``
    so greedy sampling is predictable. Present tensors grow along time like
    a real merged decoder. Every request is recorded in ``calls``.
    """

    def __init__(self, cfg: MusicGenConfig, eos_after: int | None = None):
        self.cfg = cfg
        self.eos_after = eos_after
        self.calls: List[NamedTensors] = []

    def expected_token(self, step: int, codebook: int) -> int:
        if self.eos_after is not None and step >= self.eos_after:
            return int(self.cfg.eos_token_id)
        return (step * self.cfg.num_codebooks + codebook) % self.cfg.vocab_size

    def run(self, inputs: NamedTensors) -> NamedTensors:
        self.calls.append(dict(inputs))
        cfg = self.cfg
        use_cache = bool(np.asarray(inputs["use_cache_branch"]).reshape(-1)[0])
        input_ids = inputs["input_ids"]
        rows = input_ids.shape[0]
        batch = rows // cfg.num_codebooks
        kv_shape = (batch, cfg.num_attention_heads, 1, cfg.head_dim)

        outputs: NamedTensors = {}
        if use_cache:
            step = inputs[past_key_name(0, CacheRole.DECODER_KEY)].shape[2]
        else:
            step = 0
            enc_len = inputs["encoder_hidden_states"].shape[1]
            enc_shape = (batch, cfg.num_attention_heads, enc_len, cfg.head_dim)

        for layer in range(cfg.num_hidden_layers):
            for role in CacheRole:
                name = present_key_name(layer, role)
                if role.is_decoder:
                    new = np.full(kv_shape, float(step), dtype=np.float32)
                    if use_cache:
                        past = inputs[past_key_name(layer, role)]
                        new = np.concatenate([past, new], axis=2)
                    outputs[name] = new
                elif use_cache:
                    outputs[name] = inputs[past_key_name(layer, role)]
                else:
                    outputs[name] = np.zeros(enc_shape, dtype=np.float32)

        logits = np.zeros((rows, 1, cfg.vocab_size), dtype=np.float32)
        for r in range(rows):
            logits[r, 0, self.expected_token(step, r % cfg.num_codebooks)] = 10.0
        outputs["logits"] = logits
        return outputs


class MockAudioCodecEngine:
    """
    Audio codec decoder stand-in: one short ramp per token frame.

    Args:
        samples_per_frame: output samples per token frame (640 = 32 kHz / 50 Hz)
        dtype: output dtype of ``audio_values``
        output_name: name of the returned tensor
    """

    def __init__(
        self,
        samples_per_frame: int = 640,
        dtype=np.float32,
        output_name: str = "audio_values",
    ):
        self.samples_per_frame = samples_per_frame
        self.dtype = dtype
        self.output_name = output_name
        self.calls: List[NamedTensors] = []

    def run(self, inputs: NamedTensors) -> NamedTensors:
        self.calls.append(dict(inputs))
        codes = inputs["audio_codes"]
        frames = codes.shape[-1]
        ramp = np.linspace(-0.5, 0.5, self.samples_per_frame, dtype=np.float32)
        audio = np.tile(ramp, frames).reshape(1, 1, -1).astype(self.dtype)
        return {self.output_name: audio}


class MockTextEncoderEngine:
    """Text encoder stand-in returning ``last_hidden_state`` [1, L, hidden]."""

    def __init__(self, hidden_size: int = 1024):
        self.hidden_size = hidden_size
        self.calls: List[NamedTensors] = []

    def run(self, inputs: NamedTensors) -> NamedTensors:
        self.calls.append(dict(inputs))
        ids = inputs["input_ids"]
        hidden = np.repeat(ids[..., None].astype(np.float32) / 1000.0, self.hidden_size, axis=-1)
        return {"last_hidden_state": hidden}
