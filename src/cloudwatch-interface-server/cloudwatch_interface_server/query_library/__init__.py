"""Saved query and query history tools."""
