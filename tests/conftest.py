import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from channel import apply_channel
from core import build_ofdm_stream

# Synthetic stream: N = 256, CP = 64 -> period 320, 25 symbols = 8000 samples
TEST_N_FFT = 256
TEST_CP = 64
TEST_ACTIVE = 200
TEST_SYMBOLS = 25


@pytest.fixture
def ofdm_signal():
    rng = np.random.default_rng(1)
    return build_ofdm_stream(rng, TEST_SYMBOLS, TEST_N_FFT, TEST_CP, TEST_ACTIVE)


@pytest.fixture
def noisy_ofdm_signal(ofdm_signal):
    rng = np.random.default_rng(2)
    return apply_channel(ofdm_signal, 10.0, rng)


@pytest.fixture
def long_ofdm_signal():
    rng = np.random.default_rng(3)
    return build_ofdm_stream(rng, 40, TEST_N_FFT, TEST_CP, TEST_ACTIVE)
