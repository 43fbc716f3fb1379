"""Resumable patient signup: welcome orders, step progress, and finalization."""
