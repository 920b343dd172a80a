"""Tangram piece placement validation and coordinate mapping engine."""
