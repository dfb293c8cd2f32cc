"""
Test Suite

This module contains all tests for the Statecraft workflow engine.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures
    ├── unit/               # Unit tests
    │   ├── __init__.py
    │   ├── test_run.py         # Server entry point
    │   ├── test_engine/        # Graph store, authorization, execution, sweep
    │   ├── test_repositories/  # Mongo repositories against a mocked collection
    │   └── test_utils/         # Utility tests
    └── integration/        # Integration tests
        ├── __init__.py
        └── test_api/       # API endpoint tests

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
