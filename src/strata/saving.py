"""Save and restore variables by path.

Files hold one array per variable keyed by ``variable.path``: ``.npz`` via
NumPy, or ``.safetensors`` when the optional ``safetensors`` package is
installed. Entities only need the ``describe()``/``restore()`` pair of
:class:`~strata.core.variables.Serializable`.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import numpy as np

from .core.variables import Serializable, VariableRecord

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _is_safetensors(path: Path) -> bool:
    return path.suffix.lower() == ".safetensors"


def _records(variables: Iterable[Serializable]) -> Dict[str, VariableRecord]:
    records: Dict[str, VariableRecord] = {}
    for variable in variables:
        record = variable.describe()
        if record.path in records:
            raise ValueError(f"Duplicate variable path '{record.path}'; paths must be unique to save")
        records[record.path] = record
    return records


def _write_npz(path: Path, arrays: Dict[str, np.ndarray]) -> None:
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tmp_path.open("wb") as fh:
            np.savez(fh, **arrays)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _load_npz(path: Path) -> Dict[str, np.ndarray]:
    with np.load(path, allow_pickle=False) as data:
        return {name: data[name] for name in data.files}


def _read_arrays(path: Path) -> Dict[str, np.ndarray]:
    if not _is_safetensors(path):
        return _load_npz(path)
    try:
        from safetensors.numpy import load_file  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("safetensors is required to read .safetensors files") from exc
    return load_file(str(path))


def save_variables(variables: Iterable[Serializable], path: PathLike) -> Path:
    target = Path(path)
    arrays = {
        name: np.ascontiguousarray(record.value) for name, record in _records(variables).items()
    }
    if _is_safetensors(target):
        try:
            from safetensors.numpy import save_file  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("safetensors is required to write .safetensors files") from exc
        target.parent.mkdir(parents=True, exist_ok=True)
        save_file(arrays, str(target))
    else:
        _write_npz(target, arrays)
    logger.info("Saved %d variable(s) to %s", len(arrays), target)
    return target


def load_variables(
    variables: Iterable[Any],
    path: PathLike,
    *,
    strict: bool = True,
) -> List[str]:
    """Assign stored values to ``variables`` matched by path.

    Returns the restored paths. With ``strict``, a variable whose path is
    absent from the file raises ``KeyError``.
    """
    source = Path(path)
    arrays = _read_arrays(source)
    restored: List[str] = []
    for variable in variables:
        key = variable.path
        if key not in arrays:
            if strict:
                raise KeyError(f"Variable '{key}' not found in {source}")
            continue
        variable.restore(arrays[key])
        restored.append(key)
    unused = sorted(set(arrays) - set(restored))
    if unused:
        logger.warning("Ignored %d stored value(s) without a matching variable: %s", len(unused), unused)
    logger.info("Restored %d variable(s) from %s", len(restored), source)
    return restored


def describe_file(path: PathLike) -> List[Dict[str, Any]]:
    arrays = _read_arrays(Path(path))
    return [
        {
            "path": name,
            "dtype": str(arrays[name].dtype),
            "shape": tuple(int(dim) for dim in arrays[name].shape),
        }
        for name in sorted(arrays)
    ]
