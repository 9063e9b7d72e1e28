"""End-to-end attack capture sessions."""
