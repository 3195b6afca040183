"""Session Gateway -- single-account messaging session over HTTP."""

__version__ = "1.0.5"
