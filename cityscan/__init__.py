"""cityscan - multi-tool static analysis with a unified result model."""

__version__ = "0.1.0"
