"""
End-to-end text-to-music pipeline.

prompt -> TextEncoder -> DecodeLoopController -> AudioEncodecDecoder
       -> AudioPlayer (live) or WAV file

Example:
    pipe = create_pipeline()            # downloads the ONNX models once
    samples = pipe.generate("lo-fi hip hop beat", secs=10)
    with pipe.play(samples) as stream:
        stream.wait()
    pipe.save("beat.wav", samples)
"""

import logging
from pathlib import Path
from typing import Callable, Iterator

import numpy as np

from .audio import AudioConfig, AudioPlayer, AudioStream, write_wav
from .config import ModelFiles, MusicGenConfig
from .core import (
    AudioEncodecDecoder,
    DecodeLoopController,
    InferenceEngine,
    SamplingConfig,
    TextEncoder,
)
from .engine import (
    MockAudioCodecEngine,
    MockDecoderEngine,
    MockTextEncoderEngine,
    OnnxInferenceEngine,
)
from .fetch import fetch_remote_data_file

logger = logging.getLogger(__name__)

DownloadProgress = Callable[[str, int, int], None]


class MusicGenPipeline:
    """Text prompt to PCM samples, with playback and WAV export."""

    def __init__(
        self,
        text_encoder: TextEncoder,
        decoder: InferenceEngine,
        audio_decoder: AudioEncodecDecoder,
        cfg: MusicGenConfig | None = None,
        sampling: SamplingConfig | None = None,
        audio_cfg: AudioConfig | None = None,
    ):
        self.cfg = cfg or MusicGenConfig()
        self.text_encoder = text_encoder
        self.loop = DecodeLoopController(decoder, self.cfg, sampling)
        self.audio_decoder = audio_decoder
        self.audio_cfg = audio_cfg or AudioConfig(sample_rate=self.cfg.sample_rate)

    def cancel(self) -> None:
        """Stop the current (or about to start) generation before its next decode step."""
        self.loop.cancel()

    def generate_frames(
        self,
        prompt: str,
        secs: float,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> Iterator[np.ndarray]:
        """Yield de-delayed token frames while the decoder runs."""
        hidden, mask = self.text_encoder.encode(prompt)
        max_len = self.cfg.max_len_for(secs)
        logger.info("Generating %.1fs for %r (%d steps)", secs, prompt, max_len)
        yield from self.loop.generate(hidden, mask, max_len, on_progress)

    def generate_tokens(
        self,
        prompt: str,
        secs: float,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> np.ndarray:
        """
        Returns:
            int64 [frames, num_codebooks]
        """
        frames = list(self.generate_frames(prompt, secs, on_progress))
        if not frames:
            return np.zeros((0, self.cfg.num_codebooks), dtype=np.int64)
        return np.stack(frames)

    def generate(
        self,
        prompt: str,
        secs: float,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> np.ndarray:
        """
        Returns:
            float32 mono samples at ``cfg.sample_rate``
        """
        tokens = self.generate_tokens(prompt, secs, on_progress)
        return self.audio_decoder.decode(tokens)

    def play(self, samples: np.ndarray) -> AudioStream:
        return AudioPlayer(self.audio_cfg).play_queue(samples)

    def save(self, path: str | Path, samples: np.ndarray) -> Path:
        return write_wav(path, samples, self.audio_cfg)


def download_models(
    files: ModelFiles | None = None,
    force: bool = False,
    on_progress: DownloadProgress | None = None,
) -> dict[str, Path]:
    """
    Fetch every model artifact into the local cache.

    Returns:
        {remote name: local path}
    """
    files = files or ModelFiles()
    paths = {}
    for name in files.all():
        progress = None
        if on_progress is not None:
            def progress(done, total, name=name):
                on_progress(name, done, total)
        paths[name] = fetch_remote_data_file(files.url(name), files.local(name), force, progress)
    return paths


def _mock_tokenizer():
    try:
        from tokenizers import Tokenizer, models, pre_tokenizers
    except ImportError:
        raise ImportError("tokenizers not installed. Run: pip install tokenizers")
    tokenizer = Tokenizer(models.WordLevel(vocab={"[UNK]": 0}, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = pre_tokenizers.Whitespace()
    return tokenizer


def create_pipeline(
    cfg: MusicGenConfig | None = None,
    sampling: SamplingConfig | None = None,
    files: ModelFiles | None = None,
    audio_cfg: AudioConfig | None = None,
    mock: bool = False,
    force_download: bool = False,
    on_download_progress: DownloadProgress | None = None,
    providers: list[str] | None = None,
) -> MusicGenPipeline:
    """
    Factory to create a pipeline.

    Args:
        cfg: decoder hyperparameters (must match the downloaded model)
        sampling: sampling settings
        files: model locations
        audio_cfg: playback / WAV format
        mock: use deterministic mock engines, no downloads
        force_download: re-download even when cached
        on_download_progress: called with (file name, downloaded, total)
        providers: ONNX Runtime execution providers

    Returns:
        MusicGenPipeline
    """
    cfg = cfg or MusicGenConfig()

    if mock:
        text_encoder = TextEncoder(_mock_tokenizer(), MockTextEncoderEngine(cfg.hidden_size))
        decoder = MockDecoderEngine(cfg)
        audio_engine = MockAudioCodecEngine(cfg.sample_rate // cfg.frame_rate)
    else:
        files = files or ModelFiles()
        paths = download_models(files, force_download, on_download_progress)
        text_encoder = TextEncoder.from_files(paths[files.tokenizer], paths[files.text_encoder], providers)
        decoder = OnnxInferenceEngine(paths[files.decoder], providers=providers)
        audio_engine = OnnxInferenceEngine(paths[files.audio_decoder], providers=providers)

    audio_decoder = AudioEncodecDecoder(audio_engine, cfg.num_codebooks)
    return MusicGenPipeline(text_encoder, decoder, audio_decoder, cfg, sampling, audio_cfg)
