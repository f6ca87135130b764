import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path

from channel import apply_channel, exponential_cir
from core import (
    N_FFT,
    NUM_ACTIVE_SUBCARRIERS,
    CYCLIC_PREFIX,
    SAMPLE_RATE_HZ,
    build_ofdm_stream,
    apply_cfo,
    plot_time_series,
)
from cp_estimator import OUTPUT_PORT, OfdmEstimator, run_stream, search


# Simulation parameters (script-local)
NUM_SYMBOLS = 60
SNR_DB = 10.0
CFO_HZ = 1000.0
CIR_TAPS = 8
CIR_DECAY = 2.0
NB = 2
CORRELATOR_MODE = "correlation"

# Candidate grid: alpha = useful length, beta = N / CP
ALPHA_CANDIDATES = (128, 256, 512, 1024)
BETA_CANDIDATES = (4, 8, 16, 32)

# Host block sizes; the first two are too short and get merged with the next
BLOCK_SIZES = (3000, 3500, 8000, 7500)

# Output paths
PLOTS_DIR = Path("plots") / "cp_blind"
SURFACE_PLOT_PATH = PLOTS_DIR / "cost_surface.png"
RX_PLOT_PATH = PLOTS_DIR / "rx_time.png"


def plot_cost_surface(
    surface: np.ndarray,
    alpha_set: tuple[int, ...],
    beta_set: tuple[int, ...],
    path: Path,
    title: str,
) -> None:
    """Heatmap of J(alpha, beta) with the cost printed in every cell."""
    fig, ax = plt.subplots(figsize=(7, 5))
    im = ax.imshow(surface, aspect="auto", cmap="viridis")
    ax.set_xticks(range(len(beta_set)))
    ax.set_xticklabels([str(b) for b in beta_set])
    ax.set_yticks(range(len(alpha_set)))
    ax.set_yticklabels([str(a) for a in alpha_set])
    ax.set_xlabel("beta (N / CP)")
    ax.set_ylabel("alpha (N)")
    ax.set_title(title)
    peak = float(np.max(surface)) if surface.size else 0.0
    for i in range(len(alpha_set)):
        for j in range(len(beta_set)):
            color = "black" if surface[i, j] > 0.5 * peak else "white"
            ax.text(j, i, f"{surface[i, j]:.2e}", ha="center", va="center", color=color, fontsize=7)
    fig.colorbar(im, ax=ax, label="J")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def run_simulation():
    rng = np.random.default_rng(0)
    PLOTS_DIR.mkdir(parents=True, exist_ok=True)

    tx_samples = build_ofdm_stream(rng, NUM_SYMBOLS, N_FFT, CYCLIC_PREFIX, NUM_ACTIVE_SUBCARRIERS)
    cir = exponential_cir(CIR_TAPS, CIR_DECAY, rng)
    rx_samples = apply_channel(tx_samples, SNR_DB, rng, channel_impulse_response=cir)
    rx_samples = apply_cfo(rx_samples, CFO_HZ, SAMPLE_RATE_HZ)

    estimator = OfdmEstimator(
        SAMPLE_RATE_HZ,
        NB,
        ALPHA_CANDIDATES,
        BETA_CANDIDATES,
        mode=CORRELATOR_MODE,
    )
    messages: list[dict] = []
    estimator.subscribe(OUTPUT_PORT, messages.append)
    results = run_stream(estimator, rx_samples, BLOCK_SIZES)

    # Full-grid surface on the first analysed window, for plotting
    first_window = rx_samples[: sum(BLOCK_SIZES[:3])]
    surface_result = search(
        first_window,
        ALPHA_CANDIDATES,
        BETA_CANDIDATES,
        NB,
        mode=CORRELATOR_MODE,
        keep_surface=True,
    )
    plot_cost_surface(
        surface_result.surface,
        ALPHA_CANDIDATES,
        BETA_CANDIDATES,
        SURFACE_PLOT_PATH,
        f"Cost J(alpha, beta), Nb={NB}, {CORRELATOR_MODE}",
    )
    plot_time_series(rx_samples, "Received OFDM Stream", RX_PLOT_PATH)

    # Prints
    print(f"Transmit stream: {tx_samples.size} samples ({NUM_SYMBOLS} symbols)")
    print(f"True FFT len = {N_FFT}, true CP len = {CYCLIC_PREFIX}")
    print(f"Channel: {CIR_TAPS} taps, SNR={SNR_DB} dB, CFO={CFO_HZ} Hz at Fs={SAMPLE_RATE_HZ} Hz")
    print(f"Blocks fed: {BLOCK_SIZES} -> {len(results)} estimates")
    for idx, (result, msg) in enumerate(zip(results, messages)):
        ok = "OK" if (result.alpha == N_FFT and np.isclose(result.cp_len, CYCLIC_PREFIX)) else "MISMATCH"
        print("-------- Result -------")
        print(f"[{idx}] FFT len = {msg['fft_len']}")
        print(f"[{idx}] CP len = {msg['cp_len']:.2f}  (J = {msg['cost']:.4g})  {ok}")
    print(f"Saved cost surface plot to {SURFACE_PLOT_PATH.resolve()}")
    print(f"Saved receive time series plot to {RX_PLOT_PATH.resolve()}")


def main():
    run_simulation()


if __name__ == "__main__":
    main()
