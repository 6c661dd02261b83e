"""Galleria: Drive-backed photo galleries with tag-based cache invalidation."""
