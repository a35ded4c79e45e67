"""
Output audio configuration and sample format conversion.

Samples flow through the pipeline as float32 in [-1, 1]; conversion to the
configured output representation happens once, before playback or
serialization.
"""

from dataclasses import dataclass

import numpy as np

DEFAULT_SAMPLE_RATE = 32000

# name -> (numpy dtype, bits per sample, is float)
SAMPLE_FORMATS = {
    "float32": ("<f4", 32, True),
    "float64": ("<f8", 64, True),
    "int32": ("<i4", 32, False),
    "int16": ("<i2", 16, False),
    "uint8": ("u1", 8, False),
}


@dataclass
class AudioConfig:
    """Audio output configuration."""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = 1
    sample_format: str = "float32"
    device: int | str | None = None  # None = default device

    def __post_init__(self):
        if self.sample_format not in SAMPLE_FORMATS:
            raise ValueError(
                f"Unsupported sample_format {self.sample_format!r}, expected one of {sorted(SAMPLE_FORMATS)}"
            )
        if self.sample_rate <= 0 or self.channels <= 0:
            raise ValueError(f"Invalid audio config: {self.sample_rate} Hz, {self.channels} channels")

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(SAMPLE_FORMATS[self.sample_format][0])

    @property
    def bits_per_sample(self) -> int:
        return SAMPLE_FORMATS[self.sample_format][1]

    @property
    def is_float(self) -> bool:
        return SAMPLE_FORMATS[self.sample_format][2]

    @property
    def silence(self) -> int:
        """Zero amplitude in this representation (unsigned 8-bit is offset)."""
        return 128 if self.sample_format == "uint8" else 0


def to_sample_format(samples: np.ndarray, sample_format: str = "float32") -> np.ndarray:
    """
    Convert float samples to an output representation.

    Always returns a new array, so the result is owned by the caller.
    Integer samples already stored in the target dtype (as returned by
    read_wav) are copied unchanged.

    Args:
        samples: float audio in [-1, 1], or integer samples of the target dtype
        sample_format: key of SAMPLE_FORMATS

    Returns:
        1-D array of the target dtype
    """
    dtype, _bits, is_float = SAMPLE_FORMATS[sample_format]
    x = np.asarray(samples).reshape(-1)

    if is_float or x.dtype == np.dtype(dtype):
        return x.astype(dtype)

    x = np.clip(x.astype(np.float64), -1.0, 1.0)
    if sample_format == "uint8":
        return (x * 127.0 + 128.0).astype(dtype)
    scale = float(np.iinfo(np.dtype(dtype)).max)
    return (x * scale).astype(dtype)
