"""Consensus HMM sleep-state inference for Drosophila activity monitor data."""

__version__ = "0.1.0"
