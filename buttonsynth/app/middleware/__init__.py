"""Middleware package for the service."""
