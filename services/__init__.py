"""Default services directory. Files ending in ``_service.py`` are discovered at startup."""
