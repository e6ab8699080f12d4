"""Conversation stage tracking and tool-availability policies."""
