"""Cost-provider sources."""
