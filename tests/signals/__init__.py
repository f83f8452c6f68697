"""Tests for the signals package."""
