"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and makes fixtures
available to all test files.
"""

import sys
import os

import pytest

# Set AWS region and fake credentials for tests (required by boto3 clients even with moto mocking)
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('AWS_REGION', 'us-west-2')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')

# Add fixtures directory to path so tests can import shared sample data
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), 'fixtures')))

# Add process-tenders directory to path so its sibling modules import by name
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'process-tenders')))


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays instead of sleeping."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def queue_env(monkeypatch):
    """Environment with all three queue URLs configured."""
    monkeypatch.setenv("SOURCE_QUEUE_URL", "https://sqs.us-west-2.amazonaws.com/123456789012/source")
    monkeypatch.setenv("WRITE_QUEUE_URL", "https://sqs.us-west-2.amazonaws.com/123456789012/write")
    monkeypatch.setenv("FAILED_QUEUE_URL", "https://sqs.us-west-2.amazonaws.com/123456789012/failed")
