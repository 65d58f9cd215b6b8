"""Core runtime modules for Strata."""

__all__ = [
    "backend",
    "config",
    "dtypes",
    "exceptions",
    "ops",
    "scope",
    "stateless",
    "symbolic",
    "variables",
]
