"""Attack traffic generation."""
