"""
Test suite for ClientDesk.

Unit and API tests run against a throwaway SQLite database.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test.db")
