"""Ports consumed by the cursor stream adapter."""
