import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path

# Centralized system defaults for the synthetic streams
N_FFT = 256
NUM_ACTIVE_SUBCARRIERS = 200
CYCLIC_PREFIX = 64
SAMPLE_RATE_HZ = 3_840_000.0  # 3.84 MHz


def centered_subcarrier_indices(width: int) -> np.ndarray:
    """Return subcarrier indices symmetric around DC while skipping 0."""
    half = width // 2
    negative = np.arange(-half, 0)
    positive = np.arange(1, half + 1)
    return np.concatenate((negative, positive))


def allocate_subcarriers(n_fft: int, indices: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Place the provided subcarrier values into a centered spectrum array."""
    if indices.shape[0] != values.shape[0]:
        msg = "Subcarrier index and value arrays must have the same length."
        raise ValueError(msg)

    spectrum = np.zeros(n_fft, dtype=complex)
    dc_index = n_fft // 2
    placement = (dc_index + indices) % n_fft
    spectrum[placement] = values
    return spectrum


def spectrum_to_time_domain(spectrum: np.ndarray) -> np.ndarray:
    """Convert a centered spectrum to a unit-power time-domain waveform."""
    time_domain = np.fft.ifft(np.fft.ifftshift(spectrum))
    power = np.mean(np.abs(time_domain) ** 2)
    if power == 0:
        return time_domain
    return time_domain / np.sqrt(power)


def add_cyclic_prefix(symbol: np.ndarray, cp_length: int) -> np.ndarray:
    """Prepend the cyclic prefix to the OFDM symbol."""
    if cp_length <= 0:
        return symbol
    return np.concatenate((symbol[-cp_length:], symbol))


def _qpsk_values(rng: np.random.Generator, size: int) -> np.ndarray:
    m = rng.integers(0, 4, size=size)
    re = (m & 1) * 2 - 1  # 0->-1, 1->+1 for LSB
    im = ((m >> 1) & 1) * 2 - 1
    vals = (re + 1j * im) / np.sqrt(2.0)
    return vals.astype(np.complex128)


def build_random_qpsk_symbol(
    rng: np.random.Generator,
    n_fft: int = N_FFT,
    cp_length: int = CYCLIC_PREFIX,
    num_active: int = NUM_ACTIVE_SUBCARRIERS,
) -> tuple[np.ndarray, np.ndarray]:
    """Return (time_domain_symbol, used_subcarrier_values) for one QPSK OFDM symbol.

    - Active subcarriers are the centered set of width `num_active` (DC skipped).
    - Time-domain symbol is unit-power normalized before the prefix is added.
    """
    if num_active >= n_fft:
        raise ValueError(f"num_active ({num_active}) must be smaller than n_fft ({n_fft})")
    indices = centered_subcarrier_indices(num_active)
    qpsk_vals = _qpsk_values(rng, indices.shape[0])
    spectrum = allocate_subcarriers(n_fft, indices, qpsk_vals)
    symbol = spectrum_to_time_domain(spectrum)
    return add_cyclic_prefix(symbol, cp_length), qpsk_vals


def build_ofdm_stream(
    rng: np.random.Generator,
    num_symbols: int,
    n_fft: int = N_FFT,
    cp_length: int = CYCLIC_PREFIX,
    num_active: int = NUM_ACTIVE_SUBCARRIERS,
) -> np.ndarray:
    """Concatenate `num_symbols` random QPSK symbols, each carrying its cyclic prefix."""
    if num_symbols <= 0:
        return np.zeros(0, dtype=np.complex128)
    symbols = [
        build_random_qpsk_symbol(rng, n_fft, cp_length, num_active)[0]
        for _ in range(num_symbols)
    ]
    return np.concatenate(symbols)


def apply_cfo(samples: np.ndarray, cfo_hz: float, fs_hz: float) -> np.ndarray:
    """Apply a carrier frequency offset to 1D or 2D samples.

    - If 2D, treats axis 0 as branches and applies the same tone to all.
    """
    x = np.asarray(samples)
    if x.ndim == 1:
        n = np.arange(x.size, dtype=float)
        tone = np.exp(1j * 2 * np.pi * cfo_hz * n / fs_hz)
        return x * tone
    if x.ndim != 2:
        raise ValueError("samples must be 1D or 2D")
    L = x.shape[1]
    n = np.arange(L, dtype=float)
    tone = np.exp(1j * 2 * np.pi * cfo_hz * n / fs_hz)
    return x * tone[np.newaxis, :]


def plot_time_series(samples: np.ndarray, title: str, path: Path) -> None:
    """Save real/imag/magnitude views of the time-domain waveform."""
    samples = np.asarray(samples)
    if samples.ndim == 1:
        samples = samples[np.newaxis, :]
    if samples.ndim != 2:
        raise ValueError("Expected 1D or 2D array for plotting")

    num_channels = samples.shape[0]
    fig, axes = plt.subplots(
        num_channels,
        3,
        figsize=(10, 2.5 * num_channels),
        sharex=True,
    )
    if num_channels == 1:
        axes = axes[np.newaxis, :]

    for idx in range(num_channels):
        ch = samples[idx]
        axes[idx, 0].plot(ch.real)
        axes[idx, 0].set_ylabel(f"Re ch{idx}")

        axes[idx, 1].plot(ch.imag)
        axes[idx, 1].set_ylabel(f"Im ch{idx}")

        axes[idx, 2].plot(np.abs(ch))
        axes[idx, 2].set_ylabel(f"|ch{idx}|")
        axes[idx, 2].set_xlabel("Sample index")

    fig.suptitle(title)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
