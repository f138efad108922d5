"""Domain services wired onto the application state."""
