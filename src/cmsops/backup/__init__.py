"""Backup listing and rollback commands."""
