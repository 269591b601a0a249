"""Shared helpers: error taxonomy and timestamp handling."""
