"""Packaged JSON schemas for SilentProbe inputs and artifacts."""
