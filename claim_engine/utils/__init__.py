"""Shared utilities: errors, logging and money."""
