"""Model configuration."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class MusicGenConfig:
    """MusicGen decoder hyperparameters (defaults: musicgen-small)."""
    num_codebooks: int = 4
    num_hidden_layers: int = 24
    num_attention_heads: int = 16
    hidden_size: int = 1024
    vocab_size: int = 2048
    pad_token_id: int = 2048        # also the decoder start token
    eos_token_id: int | None = None  # MusicGen has no EOS by default
    frame_rate: int = 50            # token frames per second
    sample_rate: int = 32000

    @property
    def head_dim(self) -> int:
        return self.hidden_size // self.num_attention_heads

    def max_len_for(self, secs: float) -> int:
        """Number of decode steps for ``secs`` seconds of de-delayed audio."""
        return int(secs * self.frame_rate) + self.num_codebooks - 1


@dataclass
class ModelFiles:
    """Where the ONNX artifacts live remotely and in the local cache."""
    base_url: str = "https://huggingface.co/Xenova/musicgen-small/resolve/main"
    tokenizer: str = "tokenizer.json"
    text_encoder: str = "onnx/text_encoder.onnx"
    decoder: str = "onnx/decoder_model_merged.onnx"
    audio_decoder: str = "onnx/encodec_decode.onnx"
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".cache" / "musicgen-stream")

    def url(self, name: str) -> str:
        return f"{self.base_url.rstrip('/')}/{name}"

    def local(self, name: str) -> Path:
        return Path(self.cache_dir) / name

    def all(self) -> list[str]:
        return [self.tokenizer, self.text_encoder, self.decoder, self.audio_decoder]
