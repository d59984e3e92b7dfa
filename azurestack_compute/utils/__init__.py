"""
Utility modules for the Azure Stack Compute provider.

Shared helpers for tags, locations, JSON settings, diff suppression,
long-running operations and Azure error classification.
"""
