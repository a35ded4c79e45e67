"""
Decode loop tests against the deterministic mock decoder.

MockDecoderEngine with greedy sampling emits token (s * N + i) % vocab for
codebook i at step s, so every frame can be predicted.
"""

from dataclasses import replace

import numpy as np
import pytest

from musicgen_stream import (
    DecodeLoopController,
    DecodeState,
    SamplingConfig,
    ShapeMismatchError,
    StopReason,
)
from musicgen_stream.engine import MockDecoderEngine


def expected_frame(j: int, n: int = 4, vocab: int = 32) -> list:
    return [((j + i) * n + i) % vocab for i in range(n)]


def test_cache_branch_flag_false_only_on_first_step(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.run(*encoder_outputs, max_len=6)

    flags = [bool(call["use_cache_branch"][0]) for call in mock_decoder.calls]
    assert flags == [False, True, True, True, True, True]


def test_step_input_key_sets(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.run(*encoder_outputs, max_len=3)

    first, second = mock_decoder.calls[0], mock_decoder.calls[1]
    assert "encoder_hidden_states" in first
    assert not any(k.startswith("past_key_values.") for k in first)

    assert "encoder_hidden_states" not in second
    past = [k for k in second if k.startswith("past_key_values.")]
    assert len(past) == 4 * small_cfg.num_hidden_layers
    assert second["past_key_values.0.decoder.key"].shape[2] == 1
    assert mock_decoder.calls[2]["past_key_values.1.decoder.value"].shape[2] == 2


def test_input_ids_are_the_newest_delayed_frame(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.run(*encoder_outputs, max_len=3)

    pad = small_cfg.pad_token_id
    ids = [call["input_ids"] for call in mock_decoder.calls]
    assert all(i.shape == (4, 1) for i in ids)
    assert ids[0].reshape(-1).tolist() == [pad, pad, pad, pad]
    assert ids[1].reshape(-1).tolist() == [0, pad, pad, pad]
    assert ids[2].reshape(-1).tolist() == [4, 5, pad, pad]


def test_run_emits_de_delayed_frames(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    tokens = loop.run(*encoder_outputs, max_len=10)

    assert tokens.shape == (10 - 3, 4)
    assert tokens.dtype == np.int64
    for j, frame in enumerate(tokens):
        assert frame.tolist() == expected_frame(j)

    assert loop.state is DecodeState.TERMINATED
    assert loop.stop_reason is StopReason.MAX_LEN
    assert loop.steps == 10
    assert loop.cache.is_empty


def test_frames_stream_incrementally(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    frames = loop.generate(*encoder_outputs, max_len=8)

    first = next(frames)
    assert first.tolist() == expected_frame(0)
    assert len(mock_decoder.calls) == 4
    assert loop.state is DecodeState.STEPPING_WITH_CACHE
    frames.close()


def test_closing_generator_discards_cache(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    frames = loop.generate(*encoder_outputs, max_len=8)
    next(frames)
    assert not loop.cache.is_empty

    frames.close()
    assert loop.state is DecodeState.TERMINATED
    assert loop.stop_reason is StopReason.CANCELLED
    assert loop.cache.is_empty


def test_eos_on_every_codebook_stops(small_cfg, greedy, encoder_outputs):
    cfg = replace(small_cfg, eos_token_id=31)
    engine = MockDecoderEngine(cfg, eos_after=5)
    loop = DecodeLoopController(engine, cfg, greedy)

    tokens = loop.run(*encoder_outputs, max_len=50)

    assert loop.stop_reason is StopReason.EOS
    assert loop.steps == 6
    assert len(loop.codec) == 5
    assert tokens.shape == (2, 4)
    assert loop.cache.is_empty


def test_cancel_stops_before_next_step(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)

    def on_progress(done, total):
        if done == 2:
            loop.cancel()

    loop.run(*encoder_outputs, max_len=20, on_progress=on_progress)

    assert loop.stop_reason is StopReason.CANCELLED
    assert len(mock_decoder.calls) == 2
    assert loop.cache.is_empty


def test_progress_reports_every_step(mock_decoder, small_cfg, greedy, encoder_outputs):
    seen = []
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.run(*encoder_outputs, max_len=5, on_progress=lambda d, t: seen.append((d, t)))
    assert seen == [(1, 5), (2, 5), (3, 5), (4, 5), (5, 5)]


def test_new_run_starts_without_cache(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.run(*encoder_outputs, max_len=4)
    mock_decoder.calls.clear()

    second = loop.run(*encoder_outputs, max_len=4)

    assert bool(mock_decoder.calls[0]["use_cache_branch"][0]) is False
    assert "encoder_hidden_states" in mock_decoder.calls[0]
    assert second[0].tolist() == expected_frame(0)


def test_classifier_free_guidance_batches_unconditional_row(mock_decoder, small_cfg, encoder_outputs):
    sampling = SamplingConfig(greedy=True, guidance_scale=3.0)
    loop = DecodeLoopController(mock_decoder, small_cfg, sampling)

    tokens = loop.run(*encoder_outputs, max_len=5)

    first = mock_decoder.calls[0]
    assert first["encoder_hidden_states"].shape == (2, 5, small_cfg.hidden_size)
    assert first["encoder_attention_mask"].tolist() == [[1] * 5, [0] * 5]
    assert first["input_ids"].shape == (8, 1)
    assert tokens[0].tolist() == expected_frame(0)


def test_rejects_zero_max_len(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    with pytest.raises(ValueError):
        loop.run(*encoder_outputs, max_len=0)


def test_rejects_mismatched_encoder_mask(mock_decoder, small_cfg, greedy, encoder_outputs):
    hidden, _ = encoder_outputs
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    with pytest.raises(ShapeMismatchError):
        loop.run(hidden, np.ones((1, 3)), max_len=4)


class _BadLogitsEngine(MockDecoderEngine):
    def run(self, inputs):
        outputs = super().run(inputs)
        outputs["logits"] = outputs["logits"][:2]
        return outputs


class _SkippingCacheEngine(MockDecoderEngine):
    def run(self, inputs):
        outputs = super().run(inputs)
        if len(self.calls) == 2:
            key = outputs["present.0.decoder.key"]
            outputs["present.0.decoder.key"] = np.concatenate([key, key], axis=2)
        return outputs


@pytest.mark.parametrize("engine_cls", [_BadLogitsEngine, _SkippingCacheEngine])
def test_contract_violation_aborts_run(engine_cls, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(engine_cls(small_cfg), small_cfg, greedy)
    with pytest.raises(ShapeMismatchError):
        loop.run(*encoder_outputs, max_len=6)
    assert loop.state is DecodeState.TERMINATED
    assert loop.stop_reason is StopReason.ERROR
    assert loop.cache.is_empty


def test_cancel_before_run_stops_before_first_step(mock_decoder, small_cfg, greedy, encoder_outputs):
    loop = DecodeLoopController(mock_decoder, small_cfg, greedy)
    loop.cancel()

    tokens = loop.run(*encoder_outputs, max_len=8)

    assert tokens.shape == (0, 4)
    assert mock_decoder.calls == []
    assert loop.stop_reason is StopReason.CANCELLED

    # the request is consumed by the cancelled run
    assert loop.run(*encoder_outputs, max_len=4).shape == (1, 4)
    assert loop.stop_reason is StopReason.MAX_LEN
