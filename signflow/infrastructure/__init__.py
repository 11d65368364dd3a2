"""Infrastructure layer - adapters, stubs, logging and metrics."""
