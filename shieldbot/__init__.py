"""shieldbot - guarded session client for a remote messaging network."""

__version__ = "0.1.0"
