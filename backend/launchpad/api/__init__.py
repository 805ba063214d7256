"""Launchpad HTTP API."""
