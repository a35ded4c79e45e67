"""
WAV container serialization.

Writes a canonical 44-byte RIFF header (PCM or IEEE float) followed by the
interleaved samples. Output depends only on the samples and the AudioConfig,
so the same input always produces the same bytes. Reading back goes through
soundfile.

Install: pip install soundfile
"""

import io
import logging
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Tuple

import numpy as np

from .formats import AudioConfig, to_sample_format

logger = logging.getLogger(__name__)

WAVE_FORMAT_PCM = 0x0001
WAVE_FORMAT_IEEE_FLOAT = 0x0003

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavSpec:
    """Header fields of a WAV file."""
    channels: int
    sample_rate: int
    bits_per_sample: int
    is_float: bool

    @classmethod
    def from_config(cls, cfg: AudioConfig) -> "WavSpec":
        return cls(cfg.channels, cfg.sample_rate, cfg.bits_per_sample, cfg.is_float)

    @property
    def format_tag(self) -> int:
        return WAVE_FORMAT_IEEE_FLOAT if self.is_float else WAVE_FORMAT_PCM

    @property
    def block_align(self) -> int:
        return self.channels * self.bits_per_sample // 8

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align

    def header(self, data_bytes: int) -> bytes:
        pad = data_bytes % 2
        return _HEADER.pack(
            b"RIFF", 36 + data_bytes + pad, b"WAVE",
            b"fmt ", 16, self.format_tag, self.channels, self.sample_rate,
            self.byte_rate, self.block_align, self.bits_per_sample,
            b"data", data_bytes,
        )


class WavWriter:
    """
    Streaming WAV writer.

    The header is written with zero sizes up front and patched by
    finalize(). Used as a context manager, finalize() runs on every exit,
    including when an exception is raised.

    Example:
        with open("out.wav", "wb") as f, WavWriter(f, AudioConfig()) as w:
            w.write_samples(samples)
    """

    def __init__(self, fileobj: BinaryIO, cfg: AudioConfig | None = None):
        self.cfg = cfg or AudioConfig()
        self.wav_spec = WavSpec.from_config(self.cfg)
        self._f = fileobj
        self._start = fileobj.tell()
        self._data_bytes = 0
        self._finalized = False
        self._f.write(self.wav_spec.header(0))

    @property
    def samples_written(self) -> int:
        return self._data_bytes * 8 // self.wav_spec.bits_per_sample

    def write_samples(self, samples: np.ndarray) -> None:
        """Append float samples (interleaved for multi-channel)."""
        if self._finalized:
            raise ValueError("WavWriter already finalized")
        data = to_sample_format(samples, self.cfg.sample_format)
        self._f.write(data.tobytes())
        self._data_bytes += data.nbytes

    def finalize(self) -> None:
        """Write the pad byte and patch the RIFF and data sizes."""
        if self._finalized:
            return
        self._finalized = True
        if self._data_bytes % 2:
            self._f.write(b"\x00")
        end = self._f.tell()
        self._f.seek(self._start)
        self._f.write(self.wav_spec.header(self._data_bytes))
        self._f.seek(end)
        self._f.flush()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.finalize()


def serialize_wav(samples: np.ndarray, cfg: AudioConfig | None = None) -> bytes:
    """
    Encode samples into an in-memory WAV file.

    Returns:
        Complete WAV bytes
    """
    buf = io.BytesIO()
    with WavWriter(buf, cfg) as writer:
        writer.write_samples(samples)
    return buf.getvalue()


def write_wav(path: str | Path, samples: np.ndarray, cfg: AudioConfig | None = None) -> Path:
    """
    Write a WAV file atomically.

    Samples go to ``<path>.temp`` which is renamed over ``path`` only after
    the writer is finalized; on failure the temp file is removed and any
    existing file at ``path`` is left untouched.
    """
    path = Path(path)
    tmp = path.with_name(path.name + ".temp")
    try:
        with open(tmp, "wb") as f, WavWriter(f, cfg) as writer:
            writer.write_samples(samples)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Wrote %s (%d samples)", path, writer.samples_written)
    return path


# soundfile subtype -> (read dtype, sample_format)
_SUBTYPES = {
    "FLOAT": ("float32", "float32"),
    "DOUBLE": ("float64", "float64"),
    "PCM_32": ("int32", "int32"),
    "PCM_16": ("int16", "int16"),
    # libsndfile widens unsigned 8-bit to (x - 128) << 8
    "PCM_U8": ("int16", "uint8"),
}


def read_wav(path: str | Path) -> Tuple[np.ndarray, AudioConfig]:
    """
    Read a WAV file.

    Returns:
        (interleaved samples, AudioConfig describing the file). Samples come
        back in their stored dtype, so ``serialize_wav(*read_wav(path))``
        reproduces the file.
    """
    try:
        import soundfile as sf
    except ImportError:
        raise ImportError("soundfile not installed. Run: pip install soundfile")

    info = sf.info(str(path))
    if info.subtype not in _SUBTYPES:
        raise ValueError(f"Unsupported WAV subtype {info.subtype!r} in {path}")
    dtype, sample_format = _SUBTYPES[info.subtype]

    data, sample_rate = sf.read(str(path), dtype=dtype, always_2d=False)
    data = np.ascontiguousarray(data).reshape(-1)
    if sample_format == "uint8":
        data = ((data >> 8) + 128).astype(np.uint8)
    cfg = AudioConfig(sample_rate=sample_rate, channels=info.channels, sample_format=sample_format)
    return data, cfg
