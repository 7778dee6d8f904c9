"""
Test support utilities for taskrelay tests.

Helpers that are not pytest fixtures but are shared across test files.
"""
