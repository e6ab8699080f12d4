"""Tool catalog, schema resolution, handlers and dispatch."""
