"""Shared utilities reused by the command line tools."""
