"""
HTTP surface of the LMS.
"""

from .rest_api import LMSRestAPI

__all__ = [
    "LMSRestAPI",
]
