"""
Show Console Test Suite

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Test organization:
- tests/unit/: Unit tests for individual components
- tests/integration/: Integration tests for console workflows
- tests/regression/: Regression tests for fixed bugs

Run tests:
    pytest                      # All tests
    pytest tests/unit/          # Specific directory
    pytest -v                   # Verbose output
    pytest -k geofence          # Tests matching 'geofence'
"""
