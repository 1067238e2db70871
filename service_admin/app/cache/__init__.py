"""Admin cache store and statistics."""
