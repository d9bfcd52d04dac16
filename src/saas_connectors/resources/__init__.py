"""Bundled data files (provider catalogue)."""
