"""reactor: deterministic, isolated development container lifecycle."""

__version__ = "0.1.0"
