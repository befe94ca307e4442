"""Core building blocks: configuration, errors, secrets, resilience, metrics."""
