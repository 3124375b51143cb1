"""Healthylinkx services."""
