"""Backup sources."""
