"""
musicgen-stream - real-time MusicGen token decoding and audio delivery

- Delay-pattern codec for 4-codebook EnCodec tokens
- KV-cached decode loop over ONNX Runtime sessions
- EnCodec token-to-waveform decode
- Live playback (sounddevice) and deterministic WAV export

Example:
    >>> from musicgen_stream import create_pipeline
    >>>
    >>> pipe = create_pipeline()
    >>> samples = pipe.generate("ambient piano with soft rain", secs=10)
    >>> pipe.save("ambient.wav", samples)
"""

__version__ = "0.1.0"

from .config import MusicGenConfig, ModelFiles
from .errors import AudioDeviceError, ContractViolation, FetchError, ShapeMismatchError
from .core import (
    DelayedPatternMaskIds,
    CacheRole,
    KVCacheStore,
    StepInputBuilder,
    StepOutputReader,
    Logits,
    SamplingConfig,
    TokenSampler,
    DecodeLoopController,
    DecodeState,
    StopReason,
    AudioEncodecDecoder,
    TextEncoder,
)
from .engine import (
    InferenceEngine,
    OnnxInferenceEngine,
    MockDecoderEngine,
    MockAudioCodecEngine,
    MockTextEncoderEngine,
)
from .audio import (
    AudioConfig,
    AudioPlayer,
    AudioStream,
    StreamingPlaybackBuffer,
    WavWriter,
    serialize_wav,
    write_wav,
    read_wav,
)
from .fetch import fetch_remote_data_file
from .pipeline import MusicGenPipeline, create_pipeline, download_models

__all__ = [
    # Config
    "MusicGenConfig",
    "ModelFiles",
    "SamplingConfig",
    "AudioConfig",
    # Errors
    "ContractViolation",
    "ShapeMismatchError",
    "AudioDeviceError",
    "FetchError",
    # Core
    "DelayedPatternMaskIds",
    "CacheRole",
    "KVCacheStore",
    "StepInputBuilder",
    "StepOutputReader",
    "Logits",
    "TokenSampler",
    "DecodeLoopController",
    "DecodeState",
    "StopReason",
    "AudioEncodecDecoder",
    "TextEncoder",
    # Engines
    "InferenceEngine",
    "OnnxInferenceEngine",
    "MockDecoderEngine",
    "MockAudioCodecEngine",
    "MockTextEncoderEngine",
    # Audio
    "AudioPlayer",
    "AudioStream",
    "StreamingPlaybackBuffer",
    "WavWriter",
    "serialize_wav",
    "write_wav",
    "read_wav",
    # Pipeline
    "fetch_remote_data_file",
    "MusicGenPipeline",
    "create_pipeline",
    "download_models",
]
