import cp_blind


def test_simulation_estimates_true_parameters(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    cp_blind.main()
    out = capsys.readouterr().out
    assert "FFT len = 256" in out
    assert "MISMATCH" not in out
    assert (tmp_path / cp_blind.SURFACE_PLOT_PATH).exists()
    assert (tmp_path / cp_blind.RX_PLOT_PATH).exists()
