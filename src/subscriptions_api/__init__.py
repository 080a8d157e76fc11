"""FastAPI adapters for the PayPal subscription service."""
