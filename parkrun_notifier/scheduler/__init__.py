"""Scheduler package."""
