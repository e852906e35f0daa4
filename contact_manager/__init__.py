"""Contact management HTTP service."""
