"""Booking orchestration on the target calendar."""
