"""
Observability module for av9Assist.

Provides structured logging with per-request correlation ids.
"""
