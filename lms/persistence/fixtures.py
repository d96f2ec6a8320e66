"""
Seed dataset: a small university with two teachers, three students and
three courses, two of which carry graded tasks.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..core.entities import Course, Grade, Lecture, Literature, Section, Task, User
from ..core.enums import UserRole
from ..core.interfaces import EntityStore

logger = logging.getLogger(__name__)

USERS = [
    ('1', 'Admin User', 'admin@university.edu', UserRole.ADMIN),
    ('2', 'Teacher One', 'teacher1@university.edu', UserRole.TEACHER),
    ('3', 'Teacher Two', 'teacher2@university.edu', UserRole.TEACHER),
    ('4', 'Student One', 'student1@university.edu', UserRole.STUDENT),
    ('5', 'Student Two', 'student2@university.edu', UserRole.STUDENT),
    ('6', 'Student Three', 'student3@university.edu', UserRole.STUDENT),
]

COURSES = [
    ('1', 'Introduction to Computer Science',
     'A foundational course covering basic computer science concepts.', ['2'], ['4', '5']),
    ('2', 'Advanced Mathematics',
     'An in-depth exploration of advanced mathematical concepts.', ['2', '3'], ['4', '6']),
    ('3', 'Physics 101',
     'An introduction to basic physics principles and theories.', ['3'], ['5', '6']),
]

SECTIONS = [
    ('1', '1', 'Week 1: Introduction'),
    ('2', '1', 'Week 2: Basic Algorithms'),
    ('3', '2', 'Week 1: Fundamentals'),
    ('4', '3', 'Week 1: Mechanics'),
]

GRADES = [
    ('3', '4', True, 1, 'Excellent work!'),
    ('3', '5', False, 1, 'Please review the material and try again.'),
    ('5', '4', True, 2, 'Good job on the second attempt.'),
]


def seed_store(store: EntityStore, now: Optional[datetime] = None) -> EntityStore:
    """Populate an empty store with the seed dataset.

    Task deadlines are relative to ``now`` (one and two weeks ahead).
    """
    now = now or datetime.now(timezone.utc)

    with store.atomic():
        for user_id, name, email, role in USERS:
            store.insert(User(name, email, role, entity_id=user_id))

        for course_id, name, description, teachers, students in COURSES:
            section_ids = [section_id for section_id, owner, _ in SECTIONS if owner == course_id]
            store.insert(Course(name, description, teacher_ids=teachers, student_ids=students,
                                section_ids=section_ids, entity_id=course_id))

        subsections = [
            Lecture('Lecture: Course Overview', '1', '1',
                    '<h1>Welcome to Computer Science</h1>'
                    '<p>This course will cover the fundamentals of computer science...</p>',
                    entity_id='1'),
            Literature('Literature: Introduction to Algorithms', '1', '1',
                       '<h2>Required Reading</h2><ul><li>Chapter 1 of Introduction to Algorithms</li>'
                       '<li>Article on Big O Notation</li></ul>',
                       entity_id='2'),
            Task('Task: Algorithm Quiz', '2', '1',
                 '<h2>Quiz Instructions</h2><p>Complete the quiz on basic algorithm concepts.</p>',
                 deadline=now + timedelta(days=7), max_attempts=2, entity_id='3'),
            Lecture('Lecture: Mathematics Fundamentals', '3', '2',
                    '<h1>Mathematics Fundamentals</h1>'
                    '<p>This lecture covers the basic principles of advanced mathematics...</p>',
                    entity_id='4'),
            Task('Task: Mathematics Problem Set', '3', '2',
                 '<h2>Problem Set</h2><p>Complete the following problems...</p>',
                 deadline=now + timedelta(days=14), max_attempts=3, entity_id='5'),
        ]

        for section_id, course_id, name in SECTIONS:
            subsection_ids = [sub.id for sub in subsections if sub.section_id == section_id]
            store.insert(Section(course_id, name, subsection_ids=subsection_ids, entity_id=section_id))

        for subsection in subsections:
            store.insert(subsection)

        for task_id, student_id, passed, attempts, feedback in GRADES:
            store.put_grade(Grade(task_id, student_id, passed=passed, attempts=attempts, feedback=feedback))

    logger.info("Seeded store with %d users, %d courses, %d grades", len(USERS), len(COURSES), len(GRADES))
    return store
