"""
Test Suite

Tests for the Inspection Approval Engine backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures (mongomock database, actors)
    ├── factories.py        # Model builders
    ├── unit/               # Engine, service and scheduler tests
    └── integration/        # API endpoint tests

To run tests:
    pytest backend/tests/
    pytest backend/tests/unit/
    pytest backend/tests/integration/
"""
