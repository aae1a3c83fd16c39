"""Shared helpers for voicecode."""
