"""
Per-layer attention cache for the MusicGen decoder.

Each decoder layer owns four tensors, indexed by layer id and CacheRole:
decoder key/value (self-attention, grows by one step along the time axis
on every step) and encoder key/value (cross-attention, fixed after the
first step). Tensor names for the engine are formatted once here so the
per-step path only does list lookups.
"""

import logging
from enum import IntEnum
from typing import Iterator, List, Optional, Tuple

import numpy as np

from ..errors import ContractViolation, ShapeMismatchError

logger = logging.getLogger(__name__)

# Cache tensors are [batch, heads, time, head_dim]
TIME_AXIS = -2


class CacheRole(IntEnum):
    DECODER_KEY = 0
    DECODER_VALUE = 1
    ENCODER_KEY = 2
    ENCODER_VALUE = 3

    @property
    def is_decoder(self) -> bool:
        return self in (CacheRole.DECODER_KEY, CacheRole.DECODER_VALUE)

    @property
    def suffix(self) -> str:
        side = "decoder" if self.is_decoder else "encoder"
        kind = "key" if self in (CacheRole.DECODER_KEY, CacheRole.ENCODER_KEY) else "value"
        return f"{side}.{kind}"


def past_key_name(layer: int, role: CacheRole) -> str:
    """Input name the engine expects, e.g. ``past_key_values.0.decoder.key``."""
    return f"past_key_values.{layer}.{role.suffix}"


def present_key_name(layer: int, role: CacheRole) -> str:
    """Output name the engine returns, e.g. ``present.0.decoder.key``."""
    return f"present.{layer}.{role.suffix}"


class KVCacheStore:
    """
    Growing key/value cache for one generation run.

    Args:
        num_layers: number of decoder layers
        validate_shapes: check every update against the previous step's shape

    Example:
        cache = KVCacheStore(24)
        for layer, role, name in cache.present_slots():
            cache.update(layer, role, outputs.pop(name))
        inputs.update(cache.past_inputs())
    """

    def __init__(self, num_layers: int, validate_shapes: bool = True):
        if num_layers <= 0:
            raise ValueError(f"num_layers must be greater than 0, got {num_layers}")
        self.num_layers = int(num_layers)
        self.validate_shapes = validate_shapes
        self._slots: List[List[Optional[np.ndarray]]] = [
            [None] * len(CacheRole) for _ in range(self.num_layers)
        ]
        self._past_names = [
            [past_key_name(layer, role) for role in CacheRole]
            for layer in range(self.num_layers)
        ]
        self._present_names = [
            [present_key_name(layer, role) for role in CacheRole]
            for layer in range(self.num_layers)
        ]

    @property
    def is_empty(self) -> bool:
        return all(t is None for layer in self._slots for t in layer)

    @property
    def is_complete(self) -> bool:
        return all(t is not None for layer in self._slots for t in layer)

    @property
    def past_length(self) -> int:
        """Number of cached decoder time steps (0 before the first step)."""
        key = self._slots[0][CacheRole.DECODER_KEY]
        return 0 if key is None else int(key.shape[TIME_AXIS])

    def present_name(self, layer: int, role: CacheRole) -> str:
        return self._present_names[layer][role]

    def present_slots(self) -> Iterator[Tuple[int, CacheRole, str]]:
        """Yield (layer, role, present tensor name) for all 4×L slots."""
        for layer in range(self.num_layers):
            for role in CacheRole:
                yield layer, role, self._present_names[layer][role]

    def update(self, layer: int, role: CacheRole, tensor: np.ndarray) -> None:
        """
        Replace one cache slot with the engine's present tensor.

        Raises:
            ShapeMismatchError: if the tensor does not continue the previous
                step's cache (decoder: +1 along time, encoder: unchanged)
        """
        tensor = np.asarray(tensor)
        if self.validate_shapes:
            self._check_shape(layer, role, tensor)
        self._slots[layer][role] = tensor

    def _check_shape(self, layer: int, role: CacheRole, tensor: np.ndarray) -> None:
        if tensor.ndim != 4:
            raise ShapeMismatchError(
                f"{self.present_name(layer, role)}: expected 4-D cache tensor, got shape {tensor.shape}"
            )
        previous = self._slots[layer][role]
        if previous is None:
            return

        if role.is_decoder:
            expected = list(previous.shape)
            expected[TIME_AXIS] += 1
            expected = tuple(expected)
        else:
            expected = previous.shape

        if tensor.shape != expected:
            raise ShapeMismatchError(
                f"{self.present_name(layer, role)}: expected shape {expected}, got {tensor.shape}"
            )

    def past_inputs(self) -> Iterator[Tuple[str, np.ndarray]]:
        """
        Yield (``past_key_values.*`` name, tensor) for every slot.

        Raises:
            ContractViolation: if any slot has not been filled yet
        """
        for layer in range(self.num_layers):
            names = self._past_names[layer]
            for role in CacheRole:
                tensor = self._slots[layer][role]
                if tensor is None:
                    raise ContractViolation(f"{names[role]} requested before it was cached")
                yield names[role], tensor

    def clear(self) -> None:
        """Drop every cached tensor."""
        if not self.is_empty:
            logger.debug("Discarding KV cache (%d steps)", self.past_length)
        for layer in self._slots:
            for role in CacheRole:
                layer[role] = None
