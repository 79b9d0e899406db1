from __future__ import annotations

from pathlib import Path

import pytest

from simulations.cli import main


def test_custom_query_table(capsys) -> None:
    code = main([
        "-n", "2000", "-p", "10", "-p", "140", "--workers", "1",
        "-q", "Any 6*;(onBanner6 + offBanner6) >= 1",
    ])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert out[0].split() == ["10", "150"]
    assert len(out) == 2
    assert out[1].split()[:2] == ["Any", "6*"]
    assert out[1].split()[-1] == "100.00"


def test_builtin_flag_appends_preset_queries(capsys) -> None:
    code = main([
        "-b", "event", "-n", "500", "-p", "20", "--workers", "1",
        "--builtin", "-q", "Mine;pity6 >= 0",
    ])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert len(out) == 1 + 1 + 10
    assert out[1].split() == ["Mine", "100.00"]


def test_bad_query_exits_with_usage_error(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["-n", "10", "--workers", "1", "-q", "Broken;sixes > 0"])

    assert exc.value.code == 2
    assert "Broken" in capsys.readouterr().err


def test_out_of_range_rate_exits_with_usage_error() -> None:
    with pytest.raises(SystemExit) as exc:
        main(["-n", "10", "--workers", "1", "--rate6b", "101"])

    assert exc.value.code == 2


def test_zero_workers_reports_backend_error(capsys) -> None:
    code = main(["-n", "10", "--workers", "0"])

    assert code == 1
    assert "error:" in capsys.readouterr().err


def test_plot_is_written(tmp_path: Path, capsys) -> None:
    target = tmp_path / "curve.png"

    code = main([
        "-b", "custom", "-n", "300", "-p", "50", "-p", "50", "--workers", "1",
        "-q", "Any 6*;(onBanner6 + offBanner6) >= 1", "--plot", str(target),
    ])

    assert code == 0
    assert target.exists()
    assert f"Saved: {target}" in capsys.readouterr().out
