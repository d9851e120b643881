"""Process surfaces of servicehost: daemon, launcher and operator CLI."""

__version__ = "0.1.0"
