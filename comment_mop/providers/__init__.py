"""Capability interfaces and their Reddit implementations."""
