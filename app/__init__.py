"""
Trackline: multi-tenant time tracking with project management integrations.
"""
__version__ = "0.3.0"
