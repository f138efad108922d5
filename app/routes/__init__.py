"""HTTP route registration modules."""
