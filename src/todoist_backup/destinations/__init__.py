"""Backup destinations."""
