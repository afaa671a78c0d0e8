"""Configuration package; constants live in :mod:`sentinelvault.config.settings`."""
