"""MusicGen core - token codec, KV cache, decode loop."""

from .delay_pattern import DelayedPatternMaskIds
from .kv_cache import CacheRole, KVCacheStore, past_key_name, present_key_name
from .step_io import InferenceEngine, Logits, StepInputBuilder, StepOutputReader
from .sampling import SamplingConfig, TokenSampler, apply_guidance
from .decode_loop import DecodeLoopController, DecodeState, StopReason
from .audio_encodec import AudioEncodecDecoder
from .text_encoder import TextEncoder

__all__ = [
    "DelayedPatternMaskIds",
    "CacheRole",
    "KVCacheStore",
    "past_key_name",
    "present_key_name",
    "InferenceEngine",
    "Logits",
    "StepInputBuilder",
    "StepOutputReader",
    "SamplingConfig",
    "TokenSampler",
    "apply_guidance",
    "DecodeLoopController",
    "DecodeState",
    "StopReason",
    "AudioEncodecDecoder",
    "TextEncoder",
]
