"""
Test Suite for Study Chat

This package contains all tests for the study chat client and server.
Tests are organized by module and use pytest for test discovery and execution.

Running Tests:
    # Run all tests
    pytest

    # Run with coverage
    pytest --cov=study_chat --cov-report=html

    # Run specific test file
    pytest tests/test_config.py

    # Run specific test
    pytest tests/test_config.py::TestConfigValidation

    # Run only unit tests
    pytest -m unit

    # Run only integration tests
    pytest -m integration
"""
