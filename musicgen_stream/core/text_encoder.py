"""
T5 text encoder adapter.

Tokenizes the prompt with a Hugging Face ``tokenizers`` tokenizer and runs
the text encoder model.

Install: pip install tokenizers
"""

from pathlib import Path
from typing import Tuple

import numpy as np

from ..errors import ContractViolation
from .step_io import InferenceEngine


class TextEncoder:
    """
    Prompt -> (last_hidden_state [1, L, D], attention_mask [1, L]).

    Example:
        encoder = TextEncoder.from_files("tokenizer.json", "text_encoder.onnx")
        hidden, mask = encoder.encode("80s synthwave with driving drums")
    """

    def __init__(self, tokenizer, engine: InferenceEngine):
        self.tokenizer = tokenizer
        self.engine = engine

    @classmethod
    def from_files(
        cls,
        tokenizer_path: str | Path,
        model_path: str | Path,
        providers: list[str] | None = None,
    ) -> "TextEncoder":
        try:
            from tokenizers import Tokenizer
        except ImportError:
            raise ImportError("tokenizers not installed. Run: pip install tokenizers")
        from ..engine import OnnxInferenceEngine

        tokenizer = Tokenizer.from_file(str(tokenizer_path))
        return cls(tokenizer, OnnxInferenceEngine(model_path, providers=providers))

    def tokenize(self, text: str) -> np.ndarray:
        """Token ids as int64 [1, L]."""
        ids = self.tokenizer.encode(text).ids
        if not ids:
            raise ValueError(f"Tokenizer produced no tokens for {text!r}")
        return np.array([ids], dtype=np.int64)

    def encode(self, text: str) -> Tuple[np.ndarray, np.ndarray]:
        input_ids = self.tokenize(text)
        attention_mask = np.ones_like(input_ids)

        outputs = self.engine.run({"input_ids": input_ids, "attention_mask": attention_mask})
        if "last_hidden_state" not in outputs:
            raise ContractViolation("last_hidden_state not found in text encoder output")

        return outputs["last_hidden_state"], attention_mask
