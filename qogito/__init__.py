"""Qogito - an agentic coding assistant for llama.cpp servers."""

__version__ = "0.1.0"

from qogito.config import Config
from qogito.agent import Agent

__all__ = ["Agent", "Config", "__version__"]
