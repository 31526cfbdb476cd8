"""
Core modules for Translation Relay.

This package contains the relay engine: quota accounting, translation
planning, rendering and per-message orchestration.
"""
