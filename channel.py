import numpy as np


def exponential_cir(num_taps: int, decay: float, rng: np.random.Generator) -> np.ndarray:
    """Random complex multipath taps with an exponential power-delay profile.

    Tap k has mean power exp(-k / decay); the returned taps are scaled to unit energy.
    """
    if num_taps <= 0:
        raise ValueError("num_taps must be positive")
    if decay <= 0:
        raise ValueError("decay must be positive")

    profile = np.exp(-np.arange(num_taps, dtype=float) / decay)
    taps = np.sqrt(profile / 2) * (
        rng.standard_normal(num_taps) + 1j * rng.standard_normal(num_taps)
    )
    energy = np.sum(np.abs(taps) ** 2)
    if energy == 0:  # pragma: no cover - measure-zero draw
        taps[0] = 1.0
        return taps.astype(np.complex128)
    return (taps / np.sqrt(energy)).astype(np.complex128)


def _compute_awgn_noise(signal: np.ndarray, snr_db: float, rng: np.random.Generator) -> np.ndarray:
    """Return complex AWGN matching the requested SNR."""
    signal = np.asarray(signal)
    snr_linear = 10 ** (snr_db / 10)

    signal_power = np.mean(np.abs(signal) ** 2) if signal.size else 0.0
    if signal_power == 0:
        return np.zeros(signal.shape, dtype=np.complex128)
    noise_power = signal_power / snr_linear
    noise_std = np.sqrt(noise_power / 2)
    noise = noise_std * (
        rng.standard_normal(signal.shape) + 1j * rng.standard_normal(signal.shape)
    )
    return noise


def apply_channel(
    signal: np.ndarray,
    snr_db: float,
    rng: np.random.Generator,
    channel_impulse_response: np.ndarray | None = None,
) -> np.ndarray:
    """Apply an optional CIR followed by complex AWGN to a single-branch signal.

    The faded signal is truncated back to the input length so block sizes
    fed to the estimator stay under the caller's control.
    """
    signal = np.asarray(signal)
    if signal.ndim != 1:
        raise ValueError("Signal must be a 1D array")

    if channel_impulse_response is None:
        faded = signal.astype(np.complex128)
    else:
        taps = np.asarray(channel_impulse_response).ravel()
        faded = np.convolve(signal, taps, mode="full")[: signal.size]

    noise = _compute_awgn_noise(faded, snr_db, rng)
    return faded + noise
