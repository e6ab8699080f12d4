"""Live session state, the in-memory registry and its durable side-store."""
