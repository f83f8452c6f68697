"""Tests for the decision_engine package."""
