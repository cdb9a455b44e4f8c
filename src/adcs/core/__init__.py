"""Core: configuration, logging, node definitions and the graph model."""
