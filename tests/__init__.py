"""
Test Suite for MEPS Diabetes Cohort.

Test organization:
    - unit/: Unit tests for individual components
    - integration/: End-to-end runs of the per-year pipeline and the CLI

Running Tests:
    pytest tests/
"""
