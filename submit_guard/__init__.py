"""Repeat submit guard for request handlers."""
