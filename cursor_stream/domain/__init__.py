"""Pure domain types for cursor streams."""
