"""Schedule adapter: channel roster, as-run log and schedule resolution."""

__version__ = "0.1.0"
