#!/usr/bin/env python3
"""
musicgen-stream - Basic Usage Examples

Runs entirely on mock engines, no model download or audio device needed.

Demonstrates:
1. Delay pattern interleaving
2. KV-cached decode loop
3. Token-to-waveform decode
4. Deterministic WAV export
"""

import numpy as np

from musicgen_stream import (
    DecodeLoopController,
    DelayedPatternMaskIds,
    MusicGenConfig,
    SamplingConfig,
    StreamingPlaybackBuffer,
    create_pipeline,
    serialize_wav,
)
from musicgen_stream.engine import MockDecoderEngine


def main():
    print("=" * 70)
    print("MUSICGEN-STREAM - BASIC USAGE EXAMPLES")
    print("=" * 70)

    # 1. Delay pattern
    print("\n1. Delay pattern (4 codebooks):")
    ids = DelayedPatternMaskIds(4)
    for step in range(6):
        ids.push([10 * step + i for i in range(4)])
        frame = ids.last_de_delayed()
        print(f"   push {step}: delayed={ids.last_delayed_masked(-1).tolist()}  "
              f"de-delayed={None if frame is None else frame.tolist()}")

    # 2. Decode loop
    print("\n2. Decode loop on a mock decoder:")
    cfg = MusicGenConfig(num_hidden_layers=2, num_attention_heads=2, hidden_size=8, vocab_size=32, pad_token_id=32)
    engine = MockDecoderEngine(cfg)
    loop = DecodeLoopController(engine, cfg, SamplingConfig(greedy=True, guidance_scale=None))
    hidden = np.zeros((1, 6, cfg.hidden_size), dtype=np.float32)
    mask = np.ones((1, 6), dtype=np.int64)

    tokens = loop.run(hidden, mask, max_len=cfg.max_len_for(0.1))
    print(f"   Steps:        {loop.steps} ({loop.stop_reason.value})")
    print(f"   Token frames: {tokens.shape}")
    print(f"   Cache branch: {[bool(c['use_cache_branch'][0]) for c in engine.calls]}")

    # 3. Full pipeline
    print("\n3. Mock pipeline:")
    pipe = create_pipeline(cfg=cfg, sampling=SamplingConfig(top_k=8, seed=0), mock=True)
    samples = pipe.generate("ambient piano with soft rain", secs=0.5)
    buf = StreamingPlaybackBuffer(samples, pipe.audio_cfg)
    print(f"   Samples:  {samples.shape} {samples.dtype}")
    print(f"   Duration: {buf.duration_ms} ms")

    # 4. WAV export
    print("\n4. WAV export:")
    data = serialize_wav(samples, pipe.audio_cfg)
    print(f"   Bytes:         {len(data):,}")
    print(f"   Deterministic: {data == serialize_wav(samples, pipe.audio_cfg)}")

    print("\n" + "=" * 70)
    print("Done!")
    print("=" * 70)


if __name__ == "__main__":
    main()
