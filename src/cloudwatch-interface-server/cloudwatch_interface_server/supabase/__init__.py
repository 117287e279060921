"""Supabase store and auth."""
