"""Core configuration and logging for Galleria."""
