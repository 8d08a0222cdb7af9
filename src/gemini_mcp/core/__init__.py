"""Core data types and static reference data."""
