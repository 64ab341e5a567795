"""Utility helpers for Rifler."""
