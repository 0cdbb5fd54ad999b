"""ZeroKey: gated Safe proposal building and conditional PKP signing."""

__version__ = "0.3.0"

__all__ = ["__version__"]
