"""Store Handle implementations."""
