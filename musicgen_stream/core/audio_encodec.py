"""
EnCodec decode: de-delayed tokens -> PCM samples.

The audio codec decoder takes int64 codes shaped [batch=1, channel=1,
codebook=N, time=T] and returns ``audio_values`` as float32 or float16.
"""

from typing import Iterable

import numpy as np

from ..errors import ContractViolation, ShapeMismatchError
from .step_io import InferenceEngine


class AudioEncodecDecoder:
    """
    Tokens-to-waveform adapter.

    Example:
        decoder = AudioEncodecDecoder(OnnxInferenceEngine("encodec_decode.onnx"))
        samples = decoder.decode(frames)  # float32 [num_samples]
    """

    def __init__(
        self,
        engine: InferenceEngine,
        num_codebooks: int = 4,
        input_name: str = "audio_codes",
        output_name: str = "audio_values",
    ):
        if num_codebooks <= 0:
            raise ValueError(f"num_codebooks must be greater than 0, got {num_codebooks}")
        self.engine = engine
        self.num_codebooks = num_codebooks
        self.input_name = input_name
        self.output_name = output_name

    def to_codes(self, tokens: Iterable | np.ndarray) -> np.ndarray:
        """
        Flatten frames and reshape to [1, 1, N, T].

        Args:
            tokens: frames of N tokens ([T, N] array, list of frames) or a
                flat sequence in frame-major order

        Raises:
            ShapeMismatchError: if the token count is not divisible by N
        """
        if not isinstance(tokens, np.ndarray):
            tokens = list(tokens)
        flat = np.asarray(tokens, dtype=np.int64).reshape(-1)

        n = self.num_codebooks
        if flat.size % n != 0:
            raise ShapeMismatchError(f"Expected input length divisible by {n}, got {flat.size}")

        seq_len = flat.size // n
        # (T, N) -> (N, T) -> (1, 1, N, T)
        codes = flat.reshape(seq_len, n).T[np.newaxis, np.newaxis]
        return np.ascontiguousarray(codes)

    def decode(self, tokens: Iterable | np.ndarray) -> np.ndarray:
        """
        Decode de-delayed tokens to mono float32 samples.

        Returns:
            float32 [num_samples]; empty when no tokens are given
        """
        codes = self.to_codes(tokens)
        if codes.size == 0:
            return np.zeros(0, dtype=np.float32)

        outputs = self.engine.run({self.input_name: codes})
        if self.output_name not in outputs:
            raise ContractViolation(f"Missing '{self.output_name}' in model output")

        audio = np.asarray(outputs[self.output_name])
        if audio.dtype == np.float32:
            return audio.reshape(-1)
        if audio.dtype == np.float16:
            return audio.astype(np.float32).reshape(-1)
        raise ContractViolation(
            f"Expected '{self.output_name}' tensor of type float32 or float16, got {audio.dtype}"
        )
