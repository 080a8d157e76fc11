"""Shared utilities for the subscription service."""
