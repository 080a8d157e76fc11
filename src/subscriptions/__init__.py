"""PayPal subscription billing: provider integration and subscription lifecycle."""

__version__ = "0.1.0"
