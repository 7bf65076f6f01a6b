"""
Tests for the Analytics Pipeline package.
"""
