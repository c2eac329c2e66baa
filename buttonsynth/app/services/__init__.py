"""Business logic services for the service."""
