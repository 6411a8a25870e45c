"""Interaction driver: discovery, execution and evidence capture."""
