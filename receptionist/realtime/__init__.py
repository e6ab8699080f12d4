"""Realtime model transport: credential pool, protocol messages and the per-call bridge."""
