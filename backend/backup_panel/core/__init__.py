"""Configuration, security primitives and middleware."""
