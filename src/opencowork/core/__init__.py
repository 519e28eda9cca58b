"""Core provider layer."""
