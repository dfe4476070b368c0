"""
Test suite for the lab inventory import service.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_batch_committer.py -v
"""
