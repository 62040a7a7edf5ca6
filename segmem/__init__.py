"""Segmented memory module of a teaching operating-system simulator: allocation, compaction, wire format and TCP server."""

__version__ = "0.1.0"
__all__ = ["__version__"]