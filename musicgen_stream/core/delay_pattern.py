"""
Delay-pattern bookkeeping for multi-codebook token streams.

MusicGen predicts N codebooks per step, with codebook i lagging i steps
behind codebook 0. This class keeps the N generated streams and provides
both views the decode loop needs:

- the delayed frame to feed back into the model (pad where a codebook has
  not started yet)
- the de-delayed frame, i.e. the diagonal that realigns all codebooks to
  the same logical time step
"""

from typing import Iterable, List, Optional

import numpy as np

from ..errors import ContractViolation


class DelayedPatternMaskIds:
    """
    N parallel, append-only codebook streams.

    Example:
        ids = DelayedPatternMaskIds(4)
        ids.push([1, 2, 3, 4])
        ids.last_delayed_masked(0)  # [1, 0, 0, 0]
        ids.last_de_delayed()       # None until 4 pushes
    """

    def __init__(self, num_codebooks: int):
        if num_codebooks <= 0:
            raise ValueError(f"num_codebooks must be greater than 0, got {num_codebooks}")
        self.num_codebooks = int(num_codebooks)
        self.batches: List[List[int]] = [[] for _ in range(self.num_codebooks)]

    def __len__(self) -> int:
        return len(self.batches[0])

    def push(self, token_ids: Iterable[int]) -> None:
        """
        Append one token per codebook.

        Args:
            token_ids: exactly N token ids, codebook order

        Raises:
            ContractViolation: if fewer or more than N ids are given
        """
        ids = [int(t) for t in token_ids]
        if len(ids) != self.num_codebooks:
            raise ContractViolation(
                f"Expected exactly {self.num_codebooks} token_ids, got {len(ids)}"
            )
        for batch, token_id in zip(self.batches, ids):
            batch.append(token_id)

    def last_delayed_masked(self, pad_token_id: int) -> np.ndarray:
        """
        Latest tokens, progressively delayed by codebook index.

        Codebook i reports ``pad_token_id`` while fewer than i+1 steps have
        been pushed.

        Returns:
            int64 array of shape [N]
        """
        seq_len = len(self)
        frame = np.full(self.num_codebooks, pad_token_id, dtype=np.int64)
        for i, batch in enumerate(self.batches):
            if seq_len - i > 0:
                frame[i] = batch[-1]
        return frame

    def last_de_delayed(self) -> Optional[np.ndarray]:
        """
        Latest fully determined logical frame, or None.

        Returns:
            int64 array of shape [N] holding ``batches[i][len - N + i]``,
            or None while fewer than N frames have been pushed
        """
        seq_len = len(self)
        n = self.num_codebooks
        if seq_len < n:
            return None
        return np.array(
            [self.batches[i][seq_len - n + i] for i in range(n)],
            dtype=np.int64,
        )
