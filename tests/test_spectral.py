import numpy as np
import pytest

import spectral
from spectral import SpectralPlan, TransformAllocationError


@pytest.fixture
def samples():
    rng = np.random.default_rng(0)
    return rng.standard_normal(1000) + 1j * rng.standard_normal(1000)


class TestSpectralPlan:
    def test_matches_numpy_fft(self, samples):
        plan = SpectralPlan(samples.size)
        np.testing.assert_allclose(plan.execute(samples), np.fft.fft(samples), rtol=1e-10, atol=1e-9)

    def test_worker_count_not_observable(self, samples):
        one = SpectralPlan(samples.size, workers=1).execute(samples)
        four = SpectralPlan(samples.size, workers=4).execute(samples)
        np.testing.assert_array_equal(one, four)

    def test_input_not_modified_and_output_fresh(self, samples):
        plan = SpectralPlan(samples.size)
        before = samples.copy()
        first = plan.execute(samples)
        second = plan.execute(np.zeros_like(samples))
        np.testing.assert_array_equal(samples, before)
        assert np.any(first != 0)
        assert np.all(second == 0)

    def test_length_mismatch_raises(self, samples):
        plan = SpectralPlan(samples.size + 1)
        with pytest.raises(ValueError):
            plan.execute(samples)

    @pytest.mark.parametrize("length", [0, -5])
    def test_invalid_length_is_allocation_failure(self, length):
        with pytest.raises(TransformAllocationError):
            SpectralPlan(length)

    def test_invalid_workers(self):
        with pytest.raises(ValueError):
            SpectralPlan(16, workers=0)

    def test_execute_into_owned_outbuf(self, samples):
        plan = SpectralPlan(samples.size)
        out = plan.execute(samples, out=plan.outbuf)
        assert out is plan.outbuf
        np.testing.assert_allclose(out, np.fft.fft(samples), rtol=1e-10, atol=1e-9)
        again = plan.execute(2 * samples, out=plan.outbuf)
        assert again is out
        np.testing.assert_allclose(again, 2 * np.fft.fft(samples), rtol=1e-10, atol=1e-9)

    @pytest.mark.parametrize("bad_out", [np.empty(999, dtype=complex), np.empty(1000, dtype=np.complex64)])
    def test_bad_out_buffer_raises(self, samples, bad_out):
        with pytest.raises(ValueError):
            SpectralPlan(samples.size).execute(samples, out=bad_out)

    def test_memory_error_becomes_allocation_failure(self, monkeypatch):
        def no_memory(*args, **kwargs):
            raise MemoryError

        with monkeypatch.context() as m:
            m.setattr(spectral.np, "empty", no_memory)
            with pytest.raises(TransformAllocationError) as excinfo:
                SpectralPlan(1 << 20)
        assert isinstance(excinfo.value.__cause__, MemoryError)
