# test/conftest.py
# Pytest configuration and fixtures

import pytest
import os
import sys
import tempfile
import shutil
from unittest.mock import Mock

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import ConfigManager
from test_data_generator import make_blob_documents


@pytest.fixture(scope="session")
def test_data_dir():
    """Create a temporary directory for test data."""
    temp_dir = tempfile.mkdtemp(prefix="topic_clustering_test_")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def config():
    """Default configuration with a fixed seed."""
    return ConfigManager()


@pytest.fixture
def mock_logger():
    """Create a mock logger object."""
    return Mock()


@pytest.fixture
def blob_documents():
    """Thirty articles in three well separated topics."""
    return make_blob_documents()
