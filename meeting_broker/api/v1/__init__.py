"""Version 1 HTTP routes."""
