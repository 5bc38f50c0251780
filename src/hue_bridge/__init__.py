"""Client for the Hue bridge control API and entertainment streaming."""

__all__ = ["config", "logging", "models", "client", "streaming", "protocol"]
__version__ = "1.0.0"
