"""Transport adapters, metrics and retry helpers shared by the workers."""
