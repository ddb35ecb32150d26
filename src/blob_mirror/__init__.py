"""blob-mirror: mirror files from GitHub repositories into Discord messages."""

__version__ = "0.1.0"
