"""
Fixed-length forward FFT plan.

A plan owns heap buffers sized to one analysis-window length and runs the
transform through scipy.fft with a fixed number of worker lanes. The worker
count only affects throughput; identical input gives identical output.
"""

import numpy as np
import scipy.fft as sp_fft

DEFAULT_FFT_WORKERS = 4


class TransformAllocationError(RuntimeError):
    """Raised when a transform plan cannot be built for the requested length."""


class SpectralPlan:
    """Forward DFT of exactly `length` complex samples.

    The input buffer is transformed in place on every call. `outbuf` is an
    owned scratch output that callers may pass as `out` to avoid a fresh
    allocation; its contents are overwritten by the next such call.
    """

    def __init__(self, length: int, workers: int = DEFAULT_FFT_WORKERS):
        if length <= 0:
            raise TransformAllocationError(f"Transform length must be positive, got {length}")
        if workers <= 0:
            raise ValueError("workers must be positive")
        self.length = int(length)
        self.workers = int(workers)
        try:
            self._inbuf = np.empty(self.length, dtype=np.complex128)
            self.outbuf = np.empty(self.length, dtype=np.complex128)
        except MemoryError as exc:
            raise TransformAllocationError(
                f"Cannot allocate transform buffers for length {self.length}"
            ) from exc

    def execute(self, samples: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """Return the `length`-point forward FFT of `samples`.

        The result is written to `out` when given, otherwise to a new array.
        """
        samples = np.asarray(samples)
        if samples.shape != (self.length,):
            raise ValueError(
                f"Plan length is {self.length}, got buffer of shape {samples.shape}"
            )
        if out is None:
            out = np.empty(self.length, dtype=np.complex128)
        elif out.shape != (self.length,) or out.dtype != np.complex128:
            raise ValueError(f"out must be a complex128 array of shape ({self.length},)")

        self._inbuf[:] = samples
        spectrum = sp_fft.fft(self._inbuf, n=self.length, workers=self.workers, overwrite_x=True)
        np.copyto(out, spectrum)
        return out

    def __repr__(self) -> str:
        return f"SpectralPlan(length={self.length}, workers={self.workers})"
