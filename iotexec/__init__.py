"""Device-side executor for cloud-to-device commands."""

__version__ = "0.1.0"
