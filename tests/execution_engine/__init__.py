"""Tests for the execution_engine package."""
