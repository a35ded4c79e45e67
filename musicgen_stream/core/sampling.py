"""
Token sampling from decoder logits.

Top-k / temperature sampling in torch, plus classifier-free guidance that
merges the conditional and unconditional halves of a batched step.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import torch
import torch.nn.functional as F


@dataclass
class SamplingConfig:
    top_k: Optional[int] = 250
    temperature: float = 1.0
    greedy: bool = False
    guidance_scale: Optional[float] = 3.0  # None or <= 1 disables CFG
    seed: Optional[int] = None

    @property
    def use_guidance(self) -> bool:
        return self.guidance_scale is not None and self.guidance_scale > 1.0


def apply_guidance(logits: np.ndarray, num_codebooks: int, scale: float) -> np.ndarray:
    """
    Combine conditional and unconditional logits.

    Args:
        logits: [2 * num_codebooks, vocab], conditional rows first
        num_codebooks: N
        scale: guidance coefficient

    Returns:
        [num_codebooks, vocab] guided logits
    """
    cond = logits[:num_codebooks]
    uncond = logits[num_codebooks:2 * num_codebooks]
    return uncond + (cond - uncond) * scale


class TokenSampler:
    """
    Samples one token per logits row.

    Example:
        sampler = TokenSampler(SamplingConfig(top_k=250, seed=0))
        tokens = sampler.sample(logits)  # [rows] int64
    """

    def __init__(self, cfg: SamplingConfig | None = None):
        self.cfg = cfg or SamplingConfig()
        self.generator = torch.Generator()
        if self.cfg.seed is not None:
            self.generator.manual_seed(self.cfg.seed)
        else:
            self.generator.seed()

    @torch.no_grad()
    def sample(self, logits: np.ndarray) -> np.ndarray:
        """
        Args:
            logits: [rows, vocab]

        Returns:
            int64 array [rows]
        """
        x = torch.from_numpy(np.ascontiguousarray(logits, dtype=np.float32))

        if self.cfg.greedy:
            return torch.argmax(x, dim=-1).numpy().astype(np.int64)

        x = x / max(self.cfg.temperature, 1e-5)

        top_k = self.cfg.top_k
        if top_k is not None and top_k > 0:
            v, _ = torch.topk(x, min(top_k, x.size(-1)))
            x = x.masked_fill(x < v[:, [-1]], float('-inf'))

        probs = F.softmax(x, dim=-1)
        next_tokens = torch.multinomial(probs, num_samples=1, generator=self.generator)
        return next_tokens.squeeze(-1).numpy().astype(np.int64)
