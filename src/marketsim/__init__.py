"""Simulated stock exchange core: synthetic price paths, live ticks and trade price impact."""

__version__ = "0.1.0"
