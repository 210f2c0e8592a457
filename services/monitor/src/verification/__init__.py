"""Domain ownership verification."""
