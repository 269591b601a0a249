"""Application configuration, logging and dependency wiring."""
