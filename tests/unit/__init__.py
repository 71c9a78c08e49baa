"""Unit tests for individual pipeline components."""
