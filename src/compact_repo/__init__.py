"""Compact a source tree into one LLM-ready artifact."""

__version__ = "0.1.0"
