"""
Named-tensor request/response for one decoder step.

First step:   input_ids, encoder_hidden_states, encoder_attention_mask,
              use_cache_branch=False
Cached steps: input_ids (newest delayed frame only), encoder_attention_mask,
              past_key_values.{layer}.{decoder|encoder}.{key|value},
              use_cache_branch=True

The response carries ``logits`` and one ``present.*`` tensor per cache
slot. Each is taken out of the response exactly once.
"""

from typing import Dict, Protocol

import numpy as np

from ..errors import ContractViolation, ShapeMismatchError
from .kv_cache import CacheRole, KVCacheStore, present_key_name

NamedTensors = Dict[str, np.ndarray]


class InferenceEngine(Protocol):
    """Given named input tensors, return named output tensors."""
    def run(self, inputs: NamedTensors) -> NamedTensors: ...


def _cache_branch(value: bool) -> np.ndarray:
    return np.array([value], dtype=np.bool_)


class StepInputBuilder:
    """
    Assemble the decoder inputs for a step.

    Example:
        builder = StepInputBuilder(cache)
        inputs = builder.first_step(input_ids, hidden_states, attention_mask)
        ...
        inputs = builder.cached_step(input_ids, attention_mask)
    """

    def __init__(self, cache: KVCacheStore):
        self.cache = cache

    def first_step(
        self,
        input_ids: np.ndarray,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> NamedTensors:
        """Inputs for step 0: encoder context, no cache tensors."""
        return {
            "input_ids": np.asarray(input_ids, dtype=np.int64),
            "encoder_hidden_states": encoder_hidden_states,
            "encoder_attention_mask": np.asarray(encoder_attention_mask, dtype=np.int64),
            "use_cache_branch": _cache_branch(False),
        }

    def cached_step(
        self,
        input_ids: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> NamedTensors:
        """
        Inputs for step k>0.

        ``encoder_hidden_states`` is never sent here; the encoder cache
        already holds the cross-attention context.
        """
        inputs: NamedTensors = {
            "input_ids": np.asarray(input_ids, dtype=np.int64),
            "encoder_attention_mask": np.asarray(encoder_attention_mask, dtype=np.int64),
        }
        inputs.update(self.cache.past_inputs())
        inputs["use_cache_branch"] = _cache_branch(True)
        return inputs


class Logits:
    """
    3-D logits view: [rows, sequence, vocab].

    ``rows`` is batch × num_codebooks for MusicGen.
    """

    def __init__(self, values: np.ndarray):
        values = np.asarray(values)
        if values.ndim != 3:
            raise ShapeMismatchError(f"Expected 3-D logits [rows, seq, vocab], got shape {values.shape}")
        self.values = values

    @property
    def shape(self):
        return self.values.shape

    def last(self) -> np.ndarray:
        """Logits of the last sequence position, float32 [rows, vocab]."""
        return self.values[:, -1, :].astype(np.float32, copy=False)


class StepOutputReader:
    """
    Take-once access to one step's engine outputs.

    Raises ContractViolation when a tensor is missing or was already taken;
    both mean the model does not match this decoder layout.
    """

    def __init__(self, outputs: NamedTensors):
        self._outputs = dict(outputs)

    def __contains__(self, name: str) -> bool:
        return name in self._outputs

    @property
    def remaining(self) -> list[str]:
        return sorted(self._outputs)

    def take(self, name: str) -> np.ndarray:
        try:
            return self._outputs.pop(name)
        except KeyError:
            raise ContractViolation(f"{name} was already taken or does not exist") from None

    def take_logits(self) -> Logits:
        return Logits(self.take("logits"))

    def take_present(self, layer: int, role: CacheRole) -> np.ndarray:
        return self.take(present_key_name(layer, role))

    def take_presents_into(self, cache: KVCacheStore) -> None:
        """Move every ``present.*`` tensor into the cache store."""
        for layer, role, name in cache.present_slots():
            cache.update(layer, role, self.take(name))
