"""Audio delivery - live playback and WAV files."""

from .formats import AudioConfig, SAMPLE_FORMATS, to_sample_format
from .playback import AudioPlayer, AudioStream, StreamingPlaybackBuffer
from .wav import WavSpec, WavWriter, read_wav, serialize_wav, write_wav

__all__ = [
    "AudioConfig",
    "SAMPLE_FORMATS",
    "to_sample_format",
    "AudioPlayer",
    "AudioStream",
    "StreamingPlaybackBuffer",
    "WavSpec",
    "WavWriter",
    "read_wav",
    "serialize_wav",
    "write_wav",
]
