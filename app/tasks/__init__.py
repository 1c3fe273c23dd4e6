"""
Background tasks for Trackline.
"""
