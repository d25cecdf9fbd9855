"""Test package for cms-maintenance

Shared fixtures and row helpers live in conftest.py.
"""
