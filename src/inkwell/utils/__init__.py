"""Utility helpers shared across the inkwell package."""
