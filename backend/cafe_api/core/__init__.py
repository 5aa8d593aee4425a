"""Core utilities: configuration, security, errors and authorization."""
