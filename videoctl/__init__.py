"""videoctl - batch client for xAI Grok Imagine Video."""

__version__ = "1.0.0"
