"""Tests for the risk_management package."""
