"""
Tests package - test suite for the muting admission webhook.

Contains:
- unit/: Unit tests for individual components
"""
