"""Shared constants, exceptions and storage helpers."""
