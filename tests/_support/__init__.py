"""Test support utilities for carddav-db."""
