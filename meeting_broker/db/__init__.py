"""Supabase access."""
