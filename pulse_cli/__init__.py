"""Pulse - scheduled system monitoring with throttled alert broadcasting."""

__app_name__ = "pulse"
__version__ = "0.4.0"

__all__ = ["__app_name__", "__version__"]
