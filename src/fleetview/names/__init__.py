"""
Device name cache package.
"""

from .cache import DeviceNameCache

__all__ = ["DeviceNameCache"]
