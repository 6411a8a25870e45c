"""SilentProbe - evidence-gated silent failure detection for web interactions."""

__version__ = "0.3.0"
