"""
Autoregressive decode loop for MusicGen.

Each step: build inputs -> run the decoder engine -> take logits and present
tensors -> sample one token per codebook -> push into the delay pattern ->
emit the newly completed de-delayed frame, if any.

Run states:
    START -> FIRST_STEP -> STEPPING_WITH_CACHE* -> TERMINATED

A run terminates on max_len pushes, on every codebook sampling the EOS token
in the same step, or on cancel(). The KV cache is discarded on every exit
path, including errors and a consumer closing the frame generator.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

import numpy as np

from ..config import MusicGenConfig
from ..errors import ShapeMismatchError
from .delay_pattern import DelayedPatternMaskIds
from .kv_cache import KVCacheStore
from .sampling import SamplingConfig, TokenSampler, apply_guidance
from .step_io import InferenceEngine, Logits, StepInputBuilder, StepOutputReader

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class DecodeState(Enum):
    START = "start"
    FIRST_STEP = "first_step"
    STEPPING_WITH_CACHE = "stepping_with_cache"
    TERMINATED = "terminated"


class StopReason(Enum):
    MAX_LEN = "max_len"
    EOS = "eos"
    CANCELLED = "cancelled"
    ERROR = "error"


class DecodeLoopController:
    """
    Drives the decoder engine one step at a time.

    Example:
        loop = DecodeLoopController(decoder_engine, MusicGenConfig())
        hidden, mask = text_encoder.encode("lo-fi beat")
        for frame in loop.generate(hidden, mask, max_len=500):
            ...  # frame: int64 [num_codebooks], one logical time step

    ``cancel()`` may be called from another thread; the loop stops before
    its next engine call.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        cfg: MusicGenConfig | None = None,
        sampling: SamplingConfig | None = None,
        validate_cache_shapes: bool = True,
    ):
        self.engine = engine
        self.cfg = cfg or MusicGenConfig()
        self.sampling = sampling or SamplingConfig()
        self.sampler = TokenSampler(self.sampling)

        self.cache = KVCacheStore(self.cfg.num_hidden_layers, validate_shapes=validate_cache_shapes)
        self.builder = StepInputBuilder(self.cache)
        self.codec: Optional[DelayedPatternMaskIds] = None

        self.state = DecodeState.START
        self.stop_reason: Optional[StopReason] = None
        self.steps = 0
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """
        Request the loop to stop before its next engine call.

        Safe to call from any thread. A cancel requested before a run starts
        (e.g. while the prompt is still being encoded) stops that run before
        its first step; the request is cleared when the run ends.
        """
        self._cancel.set()

    @property
    def is_running(self) -> bool:
        return self.state in (DecodeState.FIRST_STEP, DecodeState.STEPPING_WITH_CACHE)

    def _encoder_inputs(
        self,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Append the unconditional row when classifier-free guidance is on."""
        hidden = np.asarray(encoder_hidden_states)
        mask = np.asarray(encoder_attention_mask, dtype=np.int64)
        if hidden.ndim != 3:
            raise ShapeMismatchError(f"Expected encoder_hidden_states [B, L, D], got shape {hidden.shape}")
        if mask.shape != hidden.shape[:2]:
            raise ShapeMismatchError(
                f"encoder_attention_mask {mask.shape} does not match hidden states {hidden.shape[:2]}"
            )
        if self.sampling.use_guidance:
            hidden = np.concatenate([hidden, np.zeros_like(hidden)], axis=0)
            mask = np.concatenate([mask, np.zeros_like(mask)], axis=0)
        return hidden, mask

    def _input_ids(self, codec: DelayedPatternMaskIds, batch: int) -> np.ndarray:
        """Newest delayed frame, repeated per batch row: [batch * N, 1]."""
        frame = codec.last_delayed_masked(self.cfg.pad_token_id)
        return np.tile(frame, batch).reshape(-1, 1)

    def _sample(self, logits: Logits, batch: int) -> np.ndarray:
        n = self.cfg.num_codebooks
        rows = logits.shape[0]
        if rows != batch * n:
            raise ShapeMismatchError(f"Expected {batch * n} logits rows, got {rows}")

        last = logits.last()
        if self.sampling.use_guidance:
            last = apply_guidance(last, n, self.sampling.guidance_scale)
        else:
            last = last[:n]
        return self.sampler.sample(last)

    def generate(
        self,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
        max_len: int,
        on_progress: ProgressCallback | None = None,
    ) -> Iterator[np.ndarray]:
        """
        Run one generation and yield de-delayed frames as they complete.

        Args:
            encoder_hidden_states: [1, L, D] text encoder output
            encoder_attention_mask: [1, L]
            max_len: maximum number of decode steps (token pushes)
            on_progress: called with (steps_done, max_len) after every step

        Yields:
            int64 [num_codebooks] frames; the first appears after
            num_codebooks steps
        """
        if max_len <= 0:
            raise ValueError(f"max_len must be greater than 0, got {max_len}")

        hidden, mask = self._encoder_inputs(encoder_hidden_states, encoder_attention_mask)
        batch = hidden.shape[0]
        eos = self.cfg.eos_token_id

        self.cache.clear()
        codec = DelayedPatternMaskIds(self.cfg.num_codebooks)
        self.codec = codec
        self.steps = 0
        self.stop_reason = None
        self.state = DecodeState.FIRST_STEP
        logger.info("Decoding up to %d steps (batch=%d, layers=%d)",
                    max_len, batch, self.cfg.num_hidden_layers)

        try:
            while True:
                if self._cancel.is_set():
                    self.stop_reason = StopReason.CANCELLED
                    logger.warning("Generation cancelled after %d steps", self.steps)
                    break
                if len(codec) >= max_len:
                    self.stop_reason = StopReason.MAX_LEN
                    break

                input_ids = self._input_ids(codec, batch)
                if self.state is DecodeState.FIRST_STEP:
                    inputs = self.builder.first_step(input_ids, hidden, mask)
                else:
                    inputs = self.builder.cached_step(input_ids, mask)

                reader = StepOutputReader(self.engine.run(inputs))
                logits = reader.take_logits()
                reader.take_presents_into(self.cache)
                self.state = DecodeState.STEPPING_WITH_CACHE
                self.steps += 1
                logger.debug("Step %d: cache length %d", self.steps, self.cache.past_length)

                tokens = self._sample(logits, batch)
                if eos is not None and np.all(tokens == eos):
                    self.stop_reason = StopReason.EOS
                    break

                codec.push(tokens)
                if on_progress is not None:
                    try:
                        on_progress(len(codec), max_len)
                    except Exception as e:
                        logger.warning("Progress callback failed: %s", e)

                frame = codec.last_de_delayed()
                if frame is not None:
                    yield frame
        except GeneratorExit:
            self.stop_reason = StopReason.CANCELLED
            raise
        except Exception:
            self.stop_reason = StopReason.ERROR
            raise
        finally:
            self.state = DecodeState.TERMINATED
            self.cache.clear()
            self._cancel.clear()
            logger.info("Generation finished: %s after %d steps",
                        self.stop_reason.value if self.stop_reason else "unknown", self.steps)

    def run(
        self,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
        max_len: int,
        on_progress: ProgressCallback | None = None,
    ) -> np.ndarray:
        """
        Run to completion.

        Returns:
            int64 [frames, num_codebooks] de-delayed tokens
        """
        frames = list(self.generate(encoder_hidden_states, encoder_attention_mask, max_len, on_progress))
        if not frames:
            return np.zeros((0, self.cfg.num_codebooks), dtype=np.int64)
        return np.stack(frames)
