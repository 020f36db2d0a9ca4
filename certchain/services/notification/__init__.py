"""Outbound certificate notifications."""
