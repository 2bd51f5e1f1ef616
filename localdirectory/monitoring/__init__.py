"""Prometheus metrics for the review import and sync pipeline."""
