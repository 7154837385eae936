"""
Retail Sync test suite.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run one module: pytest tests/unit/test_publish_service.py -v
"""
