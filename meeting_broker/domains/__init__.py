"""Business domains of the broker."""
