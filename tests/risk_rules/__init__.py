"""Tests for the risk_rules package."""
