"""PulseChain wallet portfolio aggregation."""

__version__ = "0.1.0"
