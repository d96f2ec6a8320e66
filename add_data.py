"""
Script to add sample courses, content and grades to a running LMS server.
Start the server with ``lms --no-seed`` (or against an empty database) first.

Usage:
    python add_data.py
"""

import json
import os
import sys

from lms.client import LMSClient, LMSClientError


def _console_supports_utf8() -> bool:
    enc = getattr(sys.stdout, "encoding", None)
    return enc is not None and "utf" in enc.lower()


_OK_CHAR = "✓" if _console_supports_utf8() else "[OK]"
_FAIL_CHAR = "✗" if _console_supports_utf8() else "[FAIL]"
_WARN_CHAR = "⚠" if _console_supports_utf8() else "[WARN]"


def _detect_base_url() -> str:
    """Determine a reachable base URL.

    Priority: environment variable `LMS_BASE_URL`, then common local ports.
    If nothing responds, fall back to http://127.0.0.1:8000.
    """
    env = os.environ.get("LMS_BASE_URL")
    if env:
        return env

    candidates = [
        "http://127.0.0.1:8000",
        "http://localhost:8000",
        "http://127.0.0.1:8888",
    ]
    for candidate in candidates:
        if LMSClient(candidate, timeout=0.5).is_available():
            return candidate
    return candidates[0]


client = LMSClient(_detect_base_url())


def check_server():
    """Check if the server is running."""
    if client.is_available():
        print(f"{_OK_CHAR} Server is running at {client.base_url}")
        return True
    print(f"{_FAIL_CHAR} Server is not running!")
    print("\nPlease start the server first:")
    print("  lms --no-seed --port 8000")
    return False


def create_user(name, email, role):
    """Register a user, reusing an existing one with the same email."""
    try:
        user = client.create_user(name, email, role)
        print(f"{_OK_CHAR} Created {role}: {name} <{email}>")
        return user
    except LMSClientError as e:
        if e.status_code == 409:
            existing = [u for u in client.list_users(role) if u['email'].lower() == email.lower()]
            if existing:
                print(f"{_WARN_CHAR} {email} already registered, reusing")
                return existing[0]
        print(f"{_FAIL_CHAR} Failed to create user {email}: {e.message}")
        return None


def create_course(name, description, teacher_ids, student_ids):
    """Create a course and fill its membership."""
    try:
        course = client.create_course(name, description)
        for teacher_id in teacher_ids:
            client.add_teacher(course['id'], teacher_id)
        for student_id in student_ids:
            course = client.add_student(course['id'], student_id)
        print(f"{_OK_CHAR} Created course: {name} "
              f"({len(teacher_ids)} teachers, {len(student_ids)} students)")
        return course
    except LMSClientError as e:
        print(f"{_FAIL_CHAR} Failed to create course {name}: {e.message}")
        return None


def create_section(course_id, name, subsections):
    """Create a section with its subsections; returns the created tasks."""
    tasks = []
    try:
        section = client.add_section(course_id, name)
        for sub_name, sub_type, extra in subsections:
            subsection = client.add_subsection(section['id'], sub_name, sub_type, **extra)
            if subsection['type'] == 'task':
                tasks.append(subsection)
        print(f"{_OK_CHAR} Created section: {name} ({len(subsections)} subsections)")
    except LMSClientError as e:
        print(f"{_FAIL_CHAR} Failed to create section {name}: {e.message}")
    return tasks


def submit(task, student, passed, feedback):
    """Record one attempt."""
    try:
        grade = client.attempt_task(task['id'], student['id'], passed, feedback)
        print(f"{_OK_CHAR} {student['name']} on {task['name']}: "
              f"{grade['state']} ({grade['attempts']}/{task['max_attempts']})")
        return grade
    except LMSClientError as e:
        print(f"{_WARN_CHAR} {student['name']} on {task['name']}: {e.message}")
        return None


def list_courses():
    """List all courses."""
    courses = client.list_courses()
    print(f"\n{'='*60}")
    print(f"Courses ({len(courses)})")
    print(f"{'='*60}")
    for course in courses:
        print(f"  {course['name']:35} | {len(course['teacher_ids'])} teachers | "
              f"{len(course['student_ids'])} students | {len(course['section_ids'])} sections")
    return courses


def show_dashboard(student):
    """Print a student's task buckets."""
    print(f"\n{'='*60}")
    print(f"Dashboard for {student['name']}")
    print(f"{'='*60}")
    for bucket in ("upcoming", "completed", "past_due"):
        views = client.student_tasks(student['id'], bucket)
        print(f"  {bucket:10} | " + (", ".join(v['task']['name'] for v in views) or "-"))


def get_statistics():
    """Get system statistics."""
    stats = client.statistics()
    print(f"\n{'='*60}")
    print("System Statistics")
    print(f"{'='*60}")
    print(json.dumps(stats['statistics'], indent=2))
    return stats


def main():
    """Main execution."""
    print("="*60)
    print("LMS - Data Addition Script")
    print("="*60)
    print()

    if not check_server():
        sys.exit(1)

    print("\n" + "="*60)
    print("Adding Sample Data...")
    print("="*60 + "\n")

    print("Creating users...")
    create_user("Admin User", "admin@university.edu", "admin")
    teachers = [
        create_user("Ada Lovelace", "ada@university.edu", "teacher"),
        create_user("Alan Turing", "alan@university.edu", "teacher"),
    ]
    students = [
        create_user("Alice Johnson", "alice.johnson@university.edu", "student"),
        create_user("Bob Smith", "bob.smith@university.edu", "student"),
        create_user("Carol Davis", "carol.davis@university.edu", "student"),
    ]
    if not all(teachers) or not all(students):
        print(f"{_FAIL_CHAR} Could not create users, aborting")
        sys.exit(1)

    print("\nCreating courses...")
    programming = create_course(
        "Introduction to Programming", "Learn Python programming basics",
        [teachers[0]['id']], [students[0]['id'], students[1]['id']],
    )
    structures = create_course(
        "Data Structures", "Lists, trees, graphs and their algorithms",
        [teachers[0]['id'], teachers[1]['id']], [students[0]['id'], students[2]['id']],
    )

    print("\nCreating content...")
    tasks = []
    if programming:
        create_section(programming['id'], "Week 1: Getting Started", [
            ("Welcome", "lecture", {'content': "<p>Course overview</p>"}),
            ("Reading list", "literature", {}),
        ])
        tasks += create_section(programming['id'], "Week 2: Control Flow", [
            ("Loops", "lecture", {}),
            ("FizzBuzz", "task", {'max_attempts': 2}),
        ])
    if structures:
        tasks += create_section(structures['id'], "Week 1: Linked Lists", [
            ("Pointers refresher", "extra", {}),
            ("Reverse a list", "task", {'max_attempts': 3}),
        ])

    print("\nSubmitting attempts...")
    if len(tasks) == 2:
        submit(tasks[0], students[0], True, "Excellent work!")
        submit(tasks[0], students[1], False, "Please review the material and try again.")
        submit(tasks[1], students[0], False, "Off by one at the tail.")
        submit(tasks[1], students[0], True, "Good job on the second attempt.")

    list_courses()
    show_dashboard(students[0])
    get_statistics()

    print("\n" + "="*60)
    print(f"{_OK_CHAR} Sample data added successfully!")
    print("="*60)
    print("\nYou can now:")
    print(f"  - View API docs: {client.base_url}/docs")
    print(f"  - List courses: curl {client.base_url}/courses")
    print(f"  - Student tasks: curl {client.base_url}/students/{students[0]['id']}/tasks")
    print(f"  - Get statistics: curl {client.base_url}/statistics")
    print()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{_FAIL_CHAR} Interrupted by user")
        sys.exit(1)
