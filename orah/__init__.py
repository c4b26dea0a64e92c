"""Orah School enrollment API."""
