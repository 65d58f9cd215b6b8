from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import pytest

from strata import Variable, name_scope, save_variables
from strata.__main__ import main


def _weights(tmp_path: Path) -> Path:
    with name_scope("encoder"):
        variables = [
            Variable(np.zeros((4, 2)), name="kernel"),
            Variable(np.zeros(2), name="bias"),
        ]
    return save_variables(variables, tmp_path / "weights.npz")


def test_cli_inspect_smoke(tmp_path: Path):
    path = _weights(tmp_path)
    proc = subprocess.run(
        [sys.executable, "-m", "strata", "inspect", str(path), "--json"],
        capture_output=True,
        text=True,
        check=False,
    )
    if proc.returncode != 0:
        pytest.fail(f"CLI failed: {proc.returncode}\n{proc.stdout}\n{proc.stderr}")
    entries = json.loads(proc.stdout)
    assert [entry["path"] for entry in entries] == ["encoder/bias", "encoder/kernel"]
    assert entries[1]["shape"] == [4, 2]


def test_cli_inspect_text_output(tmp_path: Path, capsys):
    main(["inspect", str(_weights(tmp_path))])
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("encoder/bias")
    assert "(4, 2)" in lines[1]


def test_cli_inspect_missing_file(tmp_path: Path):
    with pytest.raises(SystemExit, match="not found"):
        main(["inspect", str(tmp_path / "missing.npz")])
