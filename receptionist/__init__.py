"""Session and tool orchestration core for a multi-tenant AI phone receptionist."""

__version__ = "0.1.0"
