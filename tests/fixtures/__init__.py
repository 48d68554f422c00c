"""Shared builders for readiness tests."""
