"""
Shared helpers for the import pipeline.
"""
