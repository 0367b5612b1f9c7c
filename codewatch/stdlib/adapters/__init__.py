"""Adapters implementing codewatch ports."""
