"""Shared adapter normalization helpers."""
