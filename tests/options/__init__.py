"""Tests for the options package."""
