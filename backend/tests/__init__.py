"""
Test Suite

This module contains all tests for the clientflow backend.

Structure:
    tests/
    ├── __init__.py             # This file
    ├── conftest.py             # Pytest fixtures
    ├── unit/                   # Unit tests
    │   ├── test_engine/        # Loader, compiler, evaluator, progress
    │   ├── test_repositories/  # Client state store, legacy sources, definitions
    │   └── test_services/      # Service layer tests
    └── integration/            # Sample data end to end

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
