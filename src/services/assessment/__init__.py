"""Laptop condition assessment pipeline."""
