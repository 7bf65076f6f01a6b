"""
Test suite for the archiving and analytics packages.
"""
