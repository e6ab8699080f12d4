"""Collaborator implementations that need no external systems."""
