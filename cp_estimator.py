"""
Blind OFDM Symbol / Cyclic-Prefix Length Estimation
===================================================

Estimates the total symbol length and the cyclic-prefix ratio of an OFDM
stream from raw complex baseband samples, with no knowledge of the payload.

A cyclic prefix makes samples one useful-symbol length apart identical over
the prefix span, once per symbol period. That redundancy is cyclostationary:
the lagged correlation carries energy at the harmonics of 1/period.

CANDIDATES
----------
    alpha:  hypothesized useful length (lag of the correlation, in samples)
    beta:   cyclic-prefix denominator, hypothesized prefix = alpha / beta
    period: alpha // beta + alpha   (integer prefix length)

CORRELATOR
----------
    f[i]   = sig[i] · exp(j·2π·i·p / period)
    R(p)   = (FFT(f) · FFT(sig))[alpha] / L              "convolution" mode
    R(p)   = Σ_{m<L-α} sig[m+α]·conj(sig[m])·exp(-j2πpm/period) / L
                                                         "correlation" mode

    "convolution" is the fast-convolution shortcut: spectra multiplied
    without conjugation. It reads a circular-convolution bin, not a lagged
    correlation. "correlation" is the conjugated direct sum, which is what
    actually peaks at the true (alpha, beta).

COST / SEARCH
-------------
    J(α, β) = 1/(2·Nb+1) · Σ_{p=-Nb}^{Nb} |R(p)|²
    (α*, β*) = argmax J over alpha_set × beta_set, first pair wins on ties

STREAMING
---------
    Blocks shorter than MIN_ANALYSIS_LENGTH, or not longer than the largest
    alpha candidate, are skipped (not enough data yet).
    Every estimate is published on the "ofdm_out" message port.
"""

import logging
import numbers
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Sequence

import numpy as np

from spectral import DEFAULT_FFT_WORKERS, SpectralPlan, TransformAllocationError

logger = logging.getLogger(__name__)

MIN_ANALYSIS_LENGTH = 7000
OUTPUT_PORT = "ofdm_out"

CorrelatorMode = Literal["convolution", "correlation"]
CORRELATOR_MODES = ("convolution", "correlation")

__all__ = [
    "MIN_ANALYSIS_LENGTH",
    "OUTPUT_PORT",
    "CORRELATOR_MODES",
    "EstimatorConfigError",
    "TransformAllocationError",
    "EstimationResult",
    "MessagePort",
    "OfdmEstimator",
    "symbol_period",
    "autocorr",
    "cost",
    "search",
    "run_stream",
]


class EstimatorConfigError(ValueError):
    """Raised at construction time for an unusable estimator configuration."""


def _check_mode(mode: str) -> None:
    if mode not in CORRELATOR_MODES:
        raise ValueError(f"Unknown correlator mode '{mode}' (expected one of {CORRELATOR_MODES})")


def _as_candidates(values: Iterable[int], name: str) -> tuple[int, ...]:
    """Freeze a candidate set, rejecting anything that is not an integer."""
    candidates = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise ValueError(f"{name} candidates must be integers, got {value!r}")
        candidates.append(int(value))
    return tuple(candidates)


def symbol_period(alpha: int, beta: int) -> int:
    """Hypothesized total symbol length: useful length plus integer prefix."""
    if beta <= 0:
        raise ValueError(f"beta must be positive, got {beta}")
    return alpha // beta + alpha


# =============================================================================
# Fast Correlator
# =============================================================================
def autocorr(
    sig: np.ndarray,
    alpha: int,
    beta: int,
    p: int,
    plan: SpectralPlan | None = None,
    mode: CorrelatorMode = "convolution",
    sig_spectrum: np.ndarray | None = None,
) -> complex:
    """Phase-rotated autocorrelation of `sig` at lag `alpha` and harmonic `p`.

    Args:
        sig: 1D complex analysis window of length L
        alpha: Lag / FFT bin, must lie in [0, L)
        beta: Cyclic-prefix denominator
        p: Harmonic index
        plan: Transform plan of length L ("convolution" mode only); built on demand
        mode: "convolution" or "correlation"
        sig_spectrum: Precomputed FFT of `sig` ("convolution" mode only)

    Returns:
        Complex correlation value normalized by L
    """
    _check_mode(mode)
    sig = np.asarray(sig, dtype=np.complex128)
    L = sig.size
    if not 0 <= alpha < L:
        raise ValueError(f"alpha={alpha} is not a valid bin for a window of {L} samples")
    period = symbol_period(alpha, beta)
    if period <= 0:
        raise ValueError(f"Symbol period for alpha={alpha}, beta={beta} is not positive")

    if mode == "correlation":
        m = np.arange(L - alpha, dtype=float)
        rotation = np.exp(-1j * 2 * np.pi * p * m / period)
        R = np.sum(sig[alpha:] * np.conj(sig[: L - alpha]) * rotation)
        return complex(R / L)

    if plan is None:
        plan = SpectralPlan(L)
    i = np.arange(L, dtype=float)
    f = sig * np.exp(1j * 2 * np.pi * i * p / period)

    if sig_spectrum is None:
        sig_spectrum = plan.execute(sig)
    elif sig_spectrum.shape != (L,):
        raise ValueError(f"sig_spectrum must have shape ({L},), got {sig_spectrum.shape}")

    # fast convolution
    f_fft = plan.execute(f, out=plan.outbuf)
    R_vec = f_fft * sig_spectrum
    return complex(R_vec[alpha] / L)


# =============================================================================
# Cost Evaluator
# =============================================================================
def cost(
    sig: np.ndarray,
    alpha: int,
    beta: int,
    nb: int,
    plan: SpectralPlan | None = None,
    mode: CorrelatorMode = "convolution",
    sig_spectrum: np.ndarray | None = None,
) -> float:
    """Average of |autocorr|² over the harmonic indices p in [-nb, nb]."""
    if nb < 0:
        raise ValueError(f"nb must be non-negative, got {nb}")
    _check_mode(mode)
    sig = np.asarray(sig, dtype=np.complex128)
    if mode == "convolution":
        if plan is None:
            plan = SpectralPlan(sig.size)
        if sig_spectrum is None:
            sig_spectrum = plan.execute(sig)

    J = 0.0
    for p in range(-nb, nb + 1):
        R = autocorr(sig, alpha, beta, p, plan=plan, mode=mode, sig_spectrum=sig_spectrum)
        J += abs(R) ** 2
    return J / (2 * nb + 1)


# =============================================================================
# Parameter Search
# =============================================================================
@dataclass
class EstimationResult:
    """Winning candidate pair of one search."""
    alpha: int                          # estimated FFT (useful symbol) length
    beta: int                           # cyclic-prefix denominator
    cp_len: float                       # alpha / beta
    cost: float                         # J(alpha, beta)
    surface: np.ndarray | None = None   # J over alpha_set x beta_set, if kept

    @property
    def fft_len(self) -> int:
        return self.alpha

    @property
    def symbol_len(self) -> float:
        return self.alpha + self.cp_len

    def to_message(self, samp_rate: float | None = None) -> dict:
        msg = {
            "fft_len": int(self.alpha),
            "beta": int(self.beta),
            "cp_len": float(self.cp_len),
            "cost": float(self.cost),
        }
        if samp_rate is not None:
            msg["samp_rate"] = float(samp_rate)
        return msg


def search(
    sig: np.ndarray,
    alpha_set: Sequence[int],
    beta_set: Sequence[int],
    nb: int,
    plan: SpectralPlan | None = None,
    mode: CorrelatorMode = "convolution",
    keep_surface: bool = False,
) -> EstimationResult:
    """Exhaustive argmax of `cost` over alpha_set × beta_set.

    The scan runs alpha in the outer loop and beta in the inner loop. A pair
    only replaces the current best on a strictly larger cost.
    """
    alpha_set = _as_candidates(alpha_set, "alpha")
    beta_set = _as_candidates(beta_set, "beta")
    if not alpha_set or not beta_set:
        raise ValueError("Candidate sets for alpha and beta must be non-empty")
    _check_mode(mode)
    sig = np.asarray(sig, dtype=np.complex128)
    sig_spectrum = None
    if mode == "convolution":
        if plan is None:
            plan = SpectralPlan(sig.size)
        # the window spectrum is shared by every candidate pair
        sig_spectrum = plan.execute(sig)

    surface = np.zeros((len(alpha_set), len(beta_set))) if keep_surface else None
    best: tuple[int, int, float] | None = None
    for i, a in enumerate(alpha_set):
        for j, b in enumerate(beta_set):
            J_new = cost(sig, a, b, nb, plan=plan, mode=mode, sig_spectrum=sig_spectrum)
            logger.debug("a = %d, b = %d, J = %.6g", a, b, J_new)
            if surface is not None:
                surface[i, j] = J_new
            if best is None or J_new > best[2]:
                best = (a, b, J_new)

    a_res, b_res, J = best
    return EstimationResult(alpha=a_res, beta=b_res, cp_len=a_res / b_res, cost=J, surface=surface)


# =============================================================================
# Streaming block
# =============================================================================
class MessagePort:
    """Outbound message port; delivers each message to every subscriber in order."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Callable[[dict], None]] = []

    def subscribe(self, callback: Callable[[dict], None]) -> None:
        self._subscribers.append(callback)

    def publish(self, msg: dict) -> None:
        for callback in list(self._subscribers):
            callback(msg)


class OfdmEstimator:
    """Per-block OFDM parameter estimator.

    Args:
        samp_rate: Sample rate in Hz (informational, forwarded in messages)
        nb: Harmonic half-bandwidth, p runs over [-nb, nb]
        alpha: Candidate useful-symbol lengths
        beta: Candidate cyclic-prefix denominators
        min_length: Blocks shorter than this are skipped
        mode: Correlator mode, see `autocorr`
        fft_workers: Worker lanes of the spectral transform
    """

    def __init__(
        self,
        samp_rate: float,
        nb: int,
        alpha: Iterable[int],
        beta: Iterable[int],
        min_length: int = MIN_ANALYSIS_LENGTH,
        mode: CorrelatorMode = "convolution",
        fft_workers: int = DEFAULT_FFT_WORKERS,
    ):
        try:
            alpha = _as_candidates(alpha, "alpha")
            beta = _as_candidates(beta, "beta")
        except ValueError as exc:
            raise EstimatorConfigError(str(exc)) from exc
        if samp_rate <= 0:
            raise EstimatorConfigError(f"samp_rate must be positive, got {samp_rate}")
        if nb < 0:
            raise EstimatorConfigError(f"Nb must be non-negative, got {nb}")
        if not alpha or not beta:
            raise EstimatorConfigError("Candidate sets for alpha and beta must be non-empty")
        if min(alpha) <= 0 or min(beta) <= 0:
            raise EstimatorConfigError("Candidates for alpha and beta must be positive integers")
        if min_length <= 0:
            raise EstimatorConfigError(f"min_length must be positive, got {min_length}")
        if mode not in CORRELATOR_MODES:
            raise EstimatorConfigError(f"Unknown correlator mode '{mode}'")
        if fft_workers <= 0:
            raise EstimatorConfigError(f"fft_workers must be positive, got {fft_workers}")

        self.samp_rate = float(samp_rate)
        self.nb = int(nb)
        self.alpha = alpha
        self.beta = beta
        self.min_length = int(min_length)
        self.mode = mode
        self.fft_workers = int(fft_workers)

        self._ports = {OUTPUT_PORT: MessagePort(OUTPUT_PORT)}
        self._plan: SpectralPlan | None = None
        self._lock = threading.Lock()

    def message_port(self, name: str) -> MessagePort:
        try:
            return self._ports[name]
        except KeyError as exc:
            raise ValueError(f"No message port named '{name}'") from exc

    def subscribe(self, name: str, callback: Callable[[dict], None]) -> None:
        self.message_port(name).subscribe(callback)

    def _plan_for(self, length: int) -> SpectralPlan:
        if self._plan is None or self._plan.length != length:
            self._plan = SpectralPlan(length, workers=self.fft_workers)
            logger.debug("Rebuilt spectral plan for length %d", length)
        return self._plan

    @property
    def analysis_length(self) -> int:
        """Smallest block that is analysed: at least min_length, and every alpha a valid bin."""
        return max(self.min_length, max(self.alpha) + 1)

    def work(self, block: np.ndarray) -> EstimationResult | None:
        """Estimate parameters from one block; None if the block is too short."""
        block = np.asarray(block, dtype=np.complex128)
        if block.ndim != 1:
            raise ValueError("Sample block must be a 1D array")

        L = block.size
        # we need a min number of items for analysis
        if L < self.analysis_length:
            logger.debug("Block of %d samples below analysis length %d, skipping", L, self.analysis_length)
            return None

        with self._lock:
            plan = self._plan_for(L) if self.mode == "convolution" else None
            result = search(block, self.alpha, self.beta, self.nb, plan=plan, mode=self.mode)

        logger.info("FFT len = %d, CP len = %.2f (J = %.6g)", result.alpha, result.cp_len, result.cost)
        self._ports[OUTPUT_PORT].publish(result.to_message(self.samp_rate))
        return result


def run_stream(
    estimator: OfdmEstimator,
    samples: np.ndarray,
    block_sizes: Iterable[int],
) -> list[EstimationResult]:
    """Feed `samples` to `estimator` in consecutive blocks of the given sizes.

    Samples of a skipped (too short) block stay pending and are delivered
    again together with the next block, like an unconsumed stream buffer.
    """
    samples = np.asarray(samples, dtype=np.complex128)
    results: list[EstimationResult] = []
    pending = np.zeros(0, dtype=np.complex128)
    start = 0
    for size in block_sizes:
        if size <= 0:
            raise ValueError(f"Block sizes must be positive, got {size}")
        if start >= samples.size:
            break
        pending = np.concatenate((pending, samples[start : start + size]))
        start += size
        result = estimator.work(pending)
        if result is None:
            continue
        results.append(result)
        pending = np.zeros(0, dtype=np.complex128)
    return results
