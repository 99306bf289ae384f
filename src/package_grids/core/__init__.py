"""Configuration, logging, tracing and database plumbing."""
