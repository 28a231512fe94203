"""Price analysis services."""
