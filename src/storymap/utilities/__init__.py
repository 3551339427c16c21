"""Utility modules for storymap."""
