"""Marketplace order and payment consistency engine."""
