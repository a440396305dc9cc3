"""Utility modules for dbmigrate."""
