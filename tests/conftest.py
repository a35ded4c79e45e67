"""
Pytest configuration for musicgen-stream tests.

- Torch thread cap to prevent hangs in constrained environments
- Adds repo root to sys.path for import stability
- Small model configs and mock engines shared across tests
"""

import os
import sys
from pathlib import Path

# Add repo root to path for imports
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

# Thread cap for Torch - prevents hangs in containers/CI
os.environ.setdefault("OMP_NUM_THREADS", "1")
os.environ.setdefault("MKL_NUM_THREADS", "1")

import torch
torch.set_num_threads(1)

import numpy as np
import pytest

from musicgen_stream import MusicGenConfig, SamplingConfig
from musicgen_stream.engine import MockAudioCodecEngine, MockDecoderEngine

ASSETS = Path(__file__).parent / "assets"


@pytest.fixture
def assets_dir():
    return ASSETS


@pytest.fixture
def small_cfg():
    """Tiny decoder: 2 layers, 2 heads of 4 dims, 4 codebooks, 32 tokens."""
    return MusicGenConfig(
        num_codebooks=4,
        num_hidden_layers=2,
        num_attention_heads=2,
        hidden_size=8,
        vocab_size=32,
        pad_token_id=32,
        frame_rate=50,
        sample_rate=32000,
    )


@pytest.fixture
def greedy():
    """Greedy sampling without guidance (batch of one)."""
    return SamplingConfig(greedy=True, guidance_scale=None)


@pytest.fixture
def mock_decoder(small_cfg):
    return MockDecoderEngine(small_cfg)


@pytest.fixture
def mock_codec():
    return MockAudioCodecEngine(samples_per_frame=640)


@pytest.fixture
def encoder_outputs(small_cfg):
    """Text encoder output for a 5-token prompt."""
    hidden = np.random.default_rng(0).standard_normal((1, 5, small_cfg.hidden_size)).astype(np.float32)
    mask = np.ones((1, 5), dtype=np.int64)
    return hidden, mask


@pytest.fixture
def sample_audio():
    """1 second of a 440 Hz tone at 32kHz."""
    t = np.arange(32000, dtype=np.float32) / 32000
    return (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
