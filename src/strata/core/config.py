from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import InvalidDtypeError

logger = logging.getLogger(__name__)

_FLOATX_CHOICES = ("bfloat16", "float16", "float32", "float64")
_BACKEND_CHOICES = ("numpy", "jax", "torch")
_DATA_FORMATS = ("channels_last", "channels_first")

CONFIG_FILENAME = "strata.json"


@dataclass
class BackendConfig:
    """
    Process-wide defaults consumed by the variable and operation core.

    * ``backend`` selects the array library used for variable storage
      (``"numpy"``, ``"jax"`` or ``"torch"``).
    * ``floatx`` is the default storage dtype for new float variables.
    * ``compute_dtype`` is the dtype autocasting variables present on read;
      ``None`` disables autocasting outside an explicit ``AutocastScope``.
    """

    backend: str = "numpy"  # "numpy" | "jax" | "torch"
    floatx: str = "float32"
    compute_dtype: Optional[str] = None
    epsilon: float = 1e-7
    image_data_format: str = "channels_last"

    def normalized(self) -> "BackendConfig":
        backend = (self.backend or "numpy").lower()
        if backend not in _BACKEND_CHOICES:
            raise ValueError(f"Unsupported backend: {self.backend}")
        floatx = _normalize_float_name(self.floatx, "floatx")
        compute = self.compute_dtype
        if compute is not None:
            compute = _normalize_float_name(compute, "compute_dtype")
        epsilon = float(self.epsilon)
        if epsilon <= 0:
            raise ValueError("epsilon must be positive")
        data_format = (self.image_data_format or "channels_last").lower()
        if data_format not in _DATA_FORMATS:
            raise ValueError(f"Unsupported image_data_format: {self.image_data_format}")
        return replace(
            self,
            backend=backend,
            floatx=floatx,
            compute_dtype=compute,
            epsilon=epsilon,
            image_data_format=data_format,
        )


def _normalize_float_name(value: Any, field_name: str) -> str:
    name = str(value).lower()
    if name not in _FLOATX_CHOICES:
        raise InvalidDtypeError(
            f"Unsupported {field_name}: {value!r}. Expected one of {', '.join(_FLOATX_CHOICES)}"
        )
    return name


_CONFIG = BackendConfig()


def get_config() -> BackendConfig:
    return _CONFIG


def set_config(config: BackendConfig) -> BackendConfig:
    global _CONFIG
    _CONFIG = config.normalized()
    return _CONFIG


def _update(**changes: Any) -> BackendConfig:
    return set_config(replace(_CONFIG, **changes))


def floatx() -> str:
    """Return the default float dtype, e.g. ``'float32'``."""
    return _CONFIG.floatx


def set_floatx(value: str) -> None:
    _update(floatx=value)


def compute_dtype() -> Optional[str]:
    return _CONFIG.compute_dtype


def set_compute_dtype(value: Optional[str]) -> None:
    _update(compute_dtype=value)


def epsilon() -> float:
    """Return the fuzz factor used in numeric expressions."""
    return _CONFIG.epsilon


def set_epsilon(value: float) -> None:
    _update(epsilon=value)


def backend() -> str:
    """Return the name of the active backend: ``"numpy"``, ``"jax"`` or ``"torch"``."""
    return _CONFIG.backend


def set_backend(name: str) -> None:
    _update(backend=name)


def image_data_format() -> str:
    return _CONFIG.image_data_format


def config_path() -> Path:
    home = os.environ.get("STRATA_HOME")
    base = Path(home).expanduser() if home else Path.home() / ".strata"
    return base / CONFIG_FILENAME


def load_config(path: Optional[Union[str, Path]] = None) -> BackendConfig:
    """Load defaults from a JSON file, then apply environment overrides.

    ``STRATA_BACKEND`` and ``STRATA_FLOATX`` take precedence over the file.
    A missing file leaves the built-in defaults in place.
    """
    target = Path(path) if path is not None else config_path()
    values: Dict[str, Any] = asdict(BackendConfig())
    if target.exists():
        with target.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        known = {f.name for f in fields(BackendConfig)}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning("Ignoring unknown config key '%s' in %s", key, target)
    env_backend = os.environ.get("STRATA_BACKEND")
    if env_backend:
        values["backend"] = env_backend
    env_floatx = os.environ.get("STRATA_FLOATX")
    if env_floatx:
        values["floatx"] = env_floatx
    config = set_config(BackendConfig(**values))
    logger.debug("Loaded config %s (file=%s)", config, target)
    return config
