"""Portal-local cached views."""
