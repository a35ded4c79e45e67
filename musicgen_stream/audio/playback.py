"""
Real-time playback of a finished sample sequence.

The generation side hands a complete sample array to StreamingPlaybackBuffer
before the output stream starts; from then on only the PortAudio callback
thread reads it. The callback copies into the device buffer and pads with
silence once the samples run out, so the stream ends on a clean tail.

Install: pip install sounddevice
"""

import logging
import threading
from datetime import timedelta

import numpy as np

from ..errors import AudioDeviceError
from .formats import AudioConfig, to_sample_format

logger = logging.getLogger(__name__)

# PortAudio has no 64-bit float stream format
PLAYBACK_FORMATS = ("float32", "int32", "int16", "uint8")


class StreamingPlaybackBuffer:
    """
    Single-producer/single-consumer sample queue for an output callback.

    Example:
        buf = StreamingPlaybackBuffer(samples, AudioConfig(sample_rate=32000))
        buf.duration_ms      # known before playback starts
        buf.fill(outdata)    # inside the device callback
    """

    def __init__(self, samples: np.ndarray, cfg: AudioConfig | None = None):
        """
        Args:
            samples: float audio, interleaved when channels > 1
            cfg: output format (converted once here, never in the callback)
        """
        self.cfg = cfg or AudioConfig()
        self._samples = to_sample_format(samples, self.cfg.sample_format)
        self._pos = 0
        self.underruns = 0

        frames = self._samples.size // self.cfg.channels
        self.duration_ms = (1000 * frames) // self.cfg.sample_rate
        self.duration = timedelta(milliseconds=self.duration_ms)

    def __len__(self) -> int:
        return self._samples.size

    @property
    def remaining(self) -> int:
        return self._samples.size - self._pos

    @property
    def exhausted(self) -> bool:
        return self._pos >= self._samples.size

    def fill(self, outdata: np.ndarray) -> int:
        """
        Copy the next samples into ``outdata`` and zero-fill the rest.

        Args:
            outdata: device buffer [frames, channels], C-contiguous

        Returns:
            Number of real samples written
        """
        out = outdata.reshape(-1)
        n = min(out.size, self._samples.size - self._pos)
        out[:n] = self._samples[self._pos:self._pos + n]
        out[n:] = self.cfg.silence
        self._pos += n
        return n

    def callback(self, outdata, frames, time, status):
        """sounddevice output callback - runs on the audio thread."""
        if status:
            self.underruns += 1
        self.fill(outdata)


class AudioStream:
    """
    Handle to a running output stream.

    Example:
        stream = player.play_queue(samples)
        stream.wait()   # blocks for stream.duration, then closes
        stream.stop()   # or stop early
    """

    def __init__(self, stream, buffer: StreamingPlaybackBuffer):
        self.stream = stream
        self.buffer = buffer
        self.duration = buffer.duration
        # seconds of audio still queued in the device after the last callback
        self.latency = float(stream.latency)
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_playing(self) -> bool:
        return not self._stopped.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until the samples have played or stop() is called.

        Waits for the duration plus the output latency so the device drains
        its last buffer before the stream is closed.

        Returns:
            True if playback ran to the end, False if stopped early or timed out
        """
        total = self.duration.total_seconds() + self.latency
        limit = total if timeout is None else min(total, timeout)
        if self._stopped.wait(limit):
            return False
        if limit < total:
            return False
        self.stop()
        return True

    def stop(self) -> None:
        """Stop and close the device stream. Safe to call more than once."""
        with self._lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            try:
                self.stream.stop()
            finally:
                self.stream.close()
        logger.info("Playback stopped (%d samples left)", self.buffer.remaining)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()


class AudioPlayer:
    """
    Plays sample sequences on the default (or configured) output device.

    Example:
        player = AudioPlayer(AudioConfig(sample_rate=32000))
        with player.play_queue(samples) as stream:
            stream.wait()
    """

    def __init__(self, cfg: AudioConfig | None = None):
        self.cfg = cfg or AudioConfig()
        if self.cfg.sample_format not in PLAYBACK_FORMATS:
            raise ValueError(
                f"Playback does not support {self.cfg.sample_format!r}, use one of {PLAYBACK_FORMATS}"
            )

    def play_queue(self, samples: np.ndarray) -> AudioStream:
        """
        Start playing ``samples`` and return immediately.

        Raises:
            AudioDeviceError: no output device, or the stream failed to start
        """
        try:
            import sounddevice as sd
        except ImportError:
            raise ImportError("sounddevice not installed. Run: pip install sounddevice")

        buffer = StreamingPlaybackBuffer(samples, self.cfg)

        try:
            sd.query_devices(self.cfg.device, kind="output")
        except (sd.PortAudioError, ValueError) as e:
            raise AudioDeviceError(f"No output device found: {e}") from e

        try:
            stream = sd.OutputStream(
                samplerate=self.cfg.sample_rate,
                channels=self.cfg.channels,
                dtype=self.cfg.sample_format,
                device=self.cfg.device,
                callback=buffer.callback,
            )
        except sd.PortAudioError as e:
            raise AudioDeviceError(f"Failed to open output stream: {e}") from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            raise AudioDeviceError(f"Failed to start output stream: {e}") from e

        logger.info("Playing %d samples (%s) at %d Hz",
                    len(buffer), buffer.duration, self.cfg.sample_rate)
        return AudioStream(stream, buffer)
