"""Relay SMS traffic between a device radio and the gateway backend."""

__version__ = "0.1.0"
