"""
Tests for the options trading core.
"""
