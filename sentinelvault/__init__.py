"""SentinelVault: a local, password-protected secrets store with leases."""

__version__ = "0.1.25"
