"""Notification fan-out and delivery engine."""
