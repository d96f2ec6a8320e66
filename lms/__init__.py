"""
LMS: course content, enrollment and task grading for role-scoped dashboards.

Holds users, courses, sections, subsections and grades behind a swappable
entity store and enforces the attempt bookkeeping around task grading.
"""

__version__ = "1.0.0"
__author__ = "LMS Development Team"
__description__ = "Learning management core with attempt-limited task grading"
