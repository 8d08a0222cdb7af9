"""Request pipeline: registries, handlers and dispatch."""
