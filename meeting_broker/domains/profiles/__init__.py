"""User profiles and session logs stored in Supabase."""
