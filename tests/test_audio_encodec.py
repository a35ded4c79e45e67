"""
Token-to-waveform adapter tests.
"""

import numpy as np
import pytest

from musicgen_stream import AudioEncodecDecoder, ContractViolation, ShapeMismatchError
from musicgen_stream.engine import MockAudioCodecEngine


def test_codes_layout_is_transposed():
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(), num_codebooks=4)
    frames = [[1, 2, 3, 4], [5, 6, 7, 8], [9, 10, 11, 12]]

    codes = decoder.to_codes(frames)

    assert codes.shape == (1, 1, 4, 3)
    assert codes.dtype == np.int64
    assert codes[0, 0, 0].tolist() == [1, 5, 9]
    assert codes[0, 0, 3].tolist() == [4, 8, 12]


def test_flat_and_framed_inputs_agree():
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(), num_codebooks=4)
    framed = np.arange(12).reshape(3, 4)
    np.testing.assert_array_equal(decoder.to_codes(framed), decoder.to_codes(framed.reshape(-1)))
    np.testing.assert_array_equal(decoder.to_codes(iter(framed)), decoder.to_codes(framed))


def test_decode_runs_engine(mock_codec):
    decoder = AudioEncodecDecoder(mock_codec, num_codebooks=4)
    samples = decoder.decode(np.zeros((5, 4), dtype=np.int64))

    assert samples.dtype == np.float32
    assert samples.shape == (5 * 640,)
    assert mock_codec.calls[0]["audio_codes"].shape == (1, 1, 4, 5)


def test_half_precision_output_is_converted():
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(samples_per_frame=8, dtype=np.float16), 4)
    samples = decoder.decode(np.zeros((2, 4), dtype=np.int64))
    assert samples.dtype == np.float32
    assert samples.shape == (16,)


def test_empty_tokens_skip_engine(mock_codec):
    decoder = AudioEncodecDecoder(mock_codec, num_codebooks=4)
    samples = decoder.decode([])
    assert samples.size == 0
    assert mock_codec.calls == []


@pytest.mark.parametrize("n", [2, 3, 4, 8])
def test_rejects_non_divisible_token_count(n):
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(), num_codebooks=n)
    for length in range(1, 3 * n):
        if length % n == 0:
            continue
        with pytest.raises(ShapeMismatchError, match=f"divisible by {n}"):
            decoder.decode(np.zeros(length, dtype=np.int64))


def test_missing_audio_values():
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(output_name="waveform"), 4)
    with pytest.raises(ContractViolation, match="audio_values"):
        decoder.decode(np.zeros((1, 4), dtype=np.int64))


def test_unsupported_output_dtype():
    decoder = AudioEncodecDecoder(MockAudioCodecEngine(samples_per_frame=4, dtype=np.int16), 4)
    with pytest.raises(ContractViolation, match="float32 or float16"):
        decoder.decode(np.zeros((1, 4), dtype=np.int64))
