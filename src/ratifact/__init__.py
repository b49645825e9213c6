"""Terminal dashboard for finding, watching and cleaning build artifacts."""

__version__ = "0.1.0"
