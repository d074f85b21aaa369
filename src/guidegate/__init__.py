"""guidegate: admission control for NFC/QR guide tags."""

__version__ = "0.1.0"
