"""
REST API implementation for the LMS using FastAPI.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..core.entities import Course, Grade, Section, Subsection, Task, User
from ..core.enums import AttemptState, SubsectionType, TaskBucket, UserRole
from ..core.exceptions import (
    AttemptNotAllowedError, AuthorizationError, ConcurrencyError, DuplicateEntityError,
    LMSException, ResourceNotFoundError, ValidationError
)
from ..services import (
    ContentService, EnrollmentService, EventService, GradingEngine, QueryFacade, UserService
)
from ..services.grading_engine import derive_attempt_state, remaining_attempts_for
from ..services.query_facade import TaskQuery, TaskView

logger = logging.getLogger(__name__)


# Pydantic models for API
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=r'^[^@]+@[^@]+\.[^@]+$')
    role: UserRole


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    created_at: datetime
    updated_at: datetime
    version: int


class CourseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)


class CourseResponse(BaseModel):
    id: str
    name: str
    description: str
    teacher_ids: List[str] = []
    student_ids: List[str] = []
    section_ids: List[str] = []
    created_at: datetime
    updated_at: datetime
    version: int


class SectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class SectionResponse(BaseModel):
    id: str
    course_id: str
    name: str
    subsection_ids: List[str] = []
    created_at: datetime
    updated_at: datetime
    version: int


class SubsectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: SubsectionType
    content: str = ""
    deadline: Optional[datetime] = None
    max_attempts: Optional[int] = None


class SubsectionUpdate(BaseModel):
    type: Optional[SubsectionType] = None
    name: Optional[str] = None
    content: Optional[str] = None
    deadline: Optional[datetime] = None
    max_attempts: Optional[int] = None


class SubsectionResponse(BaseModel):
    id: str
    type: str
    name: str
    section_id: str
    course_id: str
    content: str
    deadline: Optional[datetime] = None
    max_attempts: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    version: int


class OutlineSection(BaseModel):
    section: SectionResponse
    subsections: List[SubsectionResponse] = []


class OutlineResponse(BaseModel):
    course: CourseResponse
    sections: List[OutlineSection] = []


class AttemptRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    passed: bool
    feedback: Optional[str] = None


class OverrideRequest(BaseModel):
    passed: bool
    feedback: Optional[str] = None
    grader_id: Optional[str] = None


class GradeResponse(BaseModel):
    task_id: str
    student_id: str
    passed: bool
    attempts: int
    feedback: Optional[str] = None
    graded_at: datetime
    grader_id: Optional[str] = None
    state: Optional[str] = None
    remaining_attempts: Optional[int] = None


class AttemptStatusResponse(BaseModel):
    task_id: str
    student_id: str
    state: str
    can_attempt: bool
    remaining_attempts: int


class TaskViewResponse(BaseModel):
    task: SubsectionResponse
    course_name: str
    student_id: Optional[str] = None
    grade: Optional[GradeResponse] = None
    state: Optional[str] = None
    can_attempt: Optional[bool] = None
    remaining_attempts: Optional[int] = None


class StatisticsResponse(BaseModel):
    success: bool
    message: str
    statistics: Dict[str, Any]


def error_status(error: LMSException) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, ResourceNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (DuplicateEntityError, AttemptNotAllowedError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, ConcurrencyError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class LMSRestAPI:
    """REST API over the LMS services."""

    def __init__(self, user_service: UserService, enrollment_service: EnrollmentService,
                 content_service: ContentService, grading_engine: GradingEngine,
                 query_facade: QueryFacade, event_service: EventService):
        self._user_service = user_service
        self._enrollment_service = enrollment_service
        self._content_service = content_service
        self._grading_engine = grading_engine
        self._query_facade = query_facade
        self._event_service = event_service

        # Create FastAPI app
        self.app = FastAPI(
            title="LMS API",
            description="Courses, content, enrollment and task grading",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc"
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_error_handlers()
        self._setup_routes()

    def _setup_error_handlers(self):
        """Map domain errors to HTTP responses."""

        @self.app.exception_handler(LMSException)
        async def handle_lms_exception(request: Request, exc: LMSException):
            status_code = error_status(exc)
            if status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            else:
                logger.info("%s %s rejected (%d): %s", request.method, request.url.path,
                            status_code, exc.message)
            return JSONResponse(
                status_code=status_code,
                content={
                    "detail": exc.message,
                    "error": exc.__class__.__name__,
                    "error_code": exc.error_code,
                    "details": exc.details,
                },
            )

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/", response_model=Dict[str, str])
        def root():
            """Root endpoint."""
            return {
                "message": "LMS API",
                "version": __version__,
                "docs": "/docs"
            }

        @self.app.get("/health", response_model=Dict[str, str])
        def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # User endpoints
        @self.app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
        def create_user(user_data: UserCreate):
            """Register a user."""
            user = self._user_service.create_user(user_data.name, user_data.email, user_data.role)
            return self._user_to_response(user)

        @self.app.get("/users", response_model=List[UserResponse])
        def list_users(role: Optional[UserRole] = None):
            """List users, optionally filtered by role."""
            return [self._user_to_response(user) for user in self._user_service.list_users(role)]

        @self.app.get("/users/{user_id}", response_model=UserResponse)
        def get_user(user_id: str):
            """Get a user by ID."""
            return self._user_to_response(self._user_service.get_user(user_id))

        @self.app.get("/users/{user_id}/courses", response_model=List[CourseResponse])
        def get_user_courses(user_id: str):
            """Courses a user administers, teaches or attends."""
            user = self._user_service.get_user(user_id)
            courses = self._enrollment_service.courses_for_user(user.id, user.role)
            return [self._course_to_response(course) for course in courses]

        @self.app.get("/users/{user_id}/dashboard", response_model=Dict[str, Any])
        def get_dashboard(user_id: str):
            """Dashboard counts for the user's role."""
            return self._query_facade.dashboard_summary(user_id)

        # Course endpoints
        @self.app.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
        def create_course(course_data: CourseCreate):
            """Create a new course."""
            course = self._content_service.create_course(course_data.name, course_data.description)
            return self._course_to_response(course)

        @self.app.get("/courses", response_model=List[CourseResponse])
        def list_courses(skip: int = 0, limit: int = 100):
            """List all courses."""
            courses = self._content_service.list_courses()[skip:skip + limit]
            return [self._course_to_response(course) for course in courses]

        @self.app.get("/courses/{course_id}", response_model=CourseResponse)
        def get_course(course_id: str):
            """Get a course by ID."""
            return self._course_to_response(self._content_service.get_course(course_id))

        @self.app.get("/courses/{course_id}/outline", response_model=OutlineResponse)
        def get_course_outline(course_id: str):
            """A course with its sections and subsections in order."""
            outline = self._content_service.course_outline(course_id)
            return OutlineResponse(
                course=self._course_to_response(outline.course),
                sections=[
                    OutlineSection(
                        section=self._section_to_response(entry.section),
                        subsections=[self._subsection_to_response(sub) for sub in entry.subsections],
                    )
                    for entry in outline.sections
                ],
            )

        # Membership endpoints
        @self.app.post("/courses/{course_id}/teachers/{teacher_id}", response_model=CourseResponse)
        def add_teacher(course_id: str, teacher_id: str):
            """Assign a teacher to a course."""
            return self._course_to_response(self._enrollment_service.add_teacher(course_id, teacher_id))

        @self.app.delete("/courses/{course_id}/teachers/{teacher_id}", response_model=CourseResponse)
        def remove_teacher(course_id: str, teacher_id: str):
            """Unassign a teacher from a course."""
            return self._course_to_response(self._enrollment_service.remove_teacher(course_id, teacher_id))

        @self.app.post("/courses/{course_id}/students/{student_id}", response_model=CourseResponse)
        def add_student(course_id: str, student_id: str):
            """Enroll a student in a course."""
            return self._course_to_response(self._enrollment_service.add_student(course_id, student_id))

        @self.app.delete("/courses/{course_id}/students/{student_id}", response_model=CourseResponse)
        def remove_student(course_id: str, student_id: str):
            """Unenroll a student. Their grades are kept."""
            return self._course_to_response(self._enrollment_service.remove_student(course_id, student_id))

        # Content endpoints
        @self.app.get("/courses/{course_id}/sections", response_model=List[SectionResponse])
        def list_sections(course_id: str):
            """Sections of a course in order."""
            self._content_service.get_course(course_id)
            return [self._section_to_response(section)
                    for section in self._content_service.sections_for_course(course_id)]

        @self.app.post("/courses/{course_id}/sections", response_model=SectionResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_section(course_id: str, section_data: SectionCreate):
            """Append a section to a course."""
            section = self._content_service.add_section(course_id, section_data.name)
            return self._section_to_response(section)

        @self.app.get("/sections/{section_id}", response_model=SectionResponse)
        def get_section(section_id: str):
            """Get a section by ID."""
            return self._section_to_response(self._content_service.get_section(section_id))

        @self.app.get("/sections/{section_id}/subsections", response_model=List[SubsectionResponse])
        def list_subsections(section_id: str):
            """Subsections of a section in order."""
            self._content_service.get_section(section_id)
            return [self._subsection_to_response(sub)
                    for sub in self._content_service.subsections_for_section(section_id)]

        @self.app.post("/sections/{section_id}/subsections", response_model=SubsectionResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_subsection(section_id: str, subsection_data: SubsectionCreate):
            """Append a subsection to a section."""
            subsection = self._content_service.add_subsection(
                section_id,
                subsection_data.name,
                subsection_data.type,
                content=subsection_data.content,
                deadline=subsection_data.deadline,
                max_attempts=subsection_data.max_attempts,
            )
            return self._subsection_to_response(subsection)

        @self.app.get("/subsections/{subsection_id}", response_model=SubsectionResponse)
        def get_subsection(subsection_id: str):
            """Get a subsection by ID."""
            return self._subsection_to_response(self._content_service.get_subsection(subsection_id))

        @self.app.patch("/subsections/{subsection_id}", response_model=SubsectionResponse)
        def update_subsection(subsection_id: str, update_data: SubsectionUpdate):
            """Change the fields present in the body."""
            updates = update_data.model_dump(exclude_unset=True)
            subsection = self._content_service.update_subsection(subsection_id, updates)
            return self._subsection_to_response(subsection)

        # Grading endpoints
        @self.app.post("/tasks/{task_id}/attempts", response_model=GradeResponse,
                       status_code=status.HTTP_201_CREATED)
        def attempt_task(task_id: str, attempt: AttemptRequest,
                         idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")):
            """Record one graded attempt by a student."""
            grade = self._grading_engine.attempt_task(
                task_id, attempt.student_id, attempt.passed, attempt.feedback,
                idempotency_key=idempotency_key,
            )
            return self._grade_to_response(grade, self._grading_engine.get_task(task_id))

        @self.app.put("/tasks/{task_id}/grades/{student_id}", response_model=GradeResponse)
        def override_grade(task_id: str, student_id: str, override: OverrideRequest):
            """Set a student's outcome without consuming an attempt."""
            grade = self._grading_engine.override_grade(
                task_id, student_id, override.passed, override.feedback, override.grader_id
            )
            return self._grade_to_response(grade, self._grading_engine.get_task(task_id))

        @self.app.get("/tasks/{task_id}/grades", response_model=List[GradeResponse])
        def list_task_grades(task_id: str):
            """All grades recorded for a task."""
            task = self._grading_engine.get_task(task_id)
            return [self._grade_to_response(grade, task)
                    for grade in self._grading_engine.grades_for_task(task_id)]

        @self.app.get("/tasks/{task_id}/grades/{student_id}", response_model=GradeResponse)
        def get_grade(task_id: str, student_id: str):
            """A student's grade on a task."""
            task = self._grading_engine.get_task(task_id)
            grade = self._grading_engine.grade_for(student_id, task_id)
            if grade is None:
                raise ResourceNotFoundError(
                    f"No grade for student {student_id} on task {task_id}",
                    error_code="not_found",
                    details={'kind': 'grade', 'task_id': task_id, 'student_id': student_id}
                )
            return self._grade_to_response(grade, task)

        @self.app.get("/tasks/{task_id}/students/{student_id}", response_model=AttemptStatusResponse)
        def get_attempt_status(task_id: str, student_id: str):
            """Attempt state and remaining attempts of a student on a task."""
            task = self._grading_engine.get_task(task_id)
            self._user_service.require_role(student_id, UserRole.STUDENT)
            state = self._grading_engine.attempt_state(student_id, task)
            return AttemptStatusResponse(
                task_id=task_id,
                student_id=student_id,
                state=state.value,
                can_attempt=self._grading_engine.can_attempt(student_id, task),
                remaining_attempts=self._grading_engine.remaining_attempts(student_id, task),
            )

        @self.app.get("/tasks/{task_id}/statistics", response_model=Dict[str, Any])
        def get_task_statistics(task_id: str):
            """Submission counts for a task."""
            return self._grading_engine.task_statistics(task_id).to_dict()

        # Task listing endpoints
        @self.app.get("/students/{student_id}/tasks", response_model=List[TaskViewResponse])
        def list_student_tasks(student_id: str, bucket: Optional[TaskBucket] = None):
            """Tasks of a student's courses, optionally one dashboard bucket."""
            query = self._query_facade.tasks_for_student(student_id)
            return self._task_views_to_response(self._select_bucket(query, bucket))

        @self.app.get("/students/{student_id}/grades", response_model=List[GradeResponse])
        def list_student_grades(student_id: str):
            """All grades recorded for a student."""
            self._user_service.get_user(student_id)
            return [self._grade_to_response(grade)
                    for grade in self._grading_engine.grades_for_student(student_id)]

        @self.app.get("/courses/{course_id}/tasks", response_model=List[TaskViewResponse])
        def list_course_tasks(course_id: str, student_id: Optional[str] = None,
                              bucket: Optional[TaskBucket] = None):
            """Tasks of one course, with a student's state if ``student_id`` is given."""
            query = self._query_facade.tasks_for_course(course_id, student_id)
            return self._task_views_to_response(self._select_bucket(query, bucket))

        @self.app.get("/teachers/{teacher_id}/tasks", response_model=List[TaskViewResponse])
        def list_teacher_tasks(teacher_id: str, past: Optional[bool] = None):
            """Tasks of a teacher's courses; ``past`` splits on the deadline."""
            query = self._query_facade.tasks_for_teacher(teacher_id)
            if past is True:
                query = query.past()
            elif past is False:
                query = query.upcoming()
            return self._task_views_to_response(query)

        # Statistics endpoints
        @self.app.get("/statistics", response_model=StatisticsResponse)
        def get_statistics():
            """Get system statistics."""
            statistics = {
                "enrollment": self._enrollment_service.get_statistics(),
                "grading": self._grading_engine.get_statistics(),
                "events": self._event_service.get_statistics(),
            }
            return StatisticsResponse(
                success=True,
                message="Statistics retrieved successfully",
                statistics=statistics
            )

    @staticmethod
    def _select_bucket(query: TaskQuery, bucket: Optional[TaskBucket]) -> TaskQuery:
        if bucket is TaskBucket.UPCOMING:
            return query.upcoming()
        if bucket is TaskBucket.COMPLETED:
            return query.completed()
        if bucket is TaskBucket.PAST_DUE:
            return query.past_due()
        return query

    def _user_to_response(self, user: User) -> UserResponse:
        """Convert User entity to response model."""
        return UserResponse(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            created_at=user.created_at,
            updated_at=user.updated_at,
            version=user.version
        )

    def _course_to_response(self, course: Course) -> CourseResponse:
        """Convert Course entity to response model."""
        return CourseResponse(
            id=course.id,
            name=course.name,
            description=course.description,
            teacher_ids=course.teacher_ids,
            student_ids=course.student_ids,
            section_ids=course.section_ids,
            created_at=course.created_at,
            updated_at=course.updated_at,
            version=course.version
        )

    def _section_to_response(self, section: Section) -> SectionResponse:
        """Convert Section entity to response model."""
        return SectionResponse(
            id=section.id,
            course_id=section.course_id,
            name=section.name,
            subsection_ids=section.subsection_ids,
            created_at=section.created_at,
            updated_at=section.updated_at,
            version=section.version
        )

    def _subsection_to_response(self, subsection: Subsection) -> SubsectionResponse:
        """Convert a subsection variant to response model."""
        is_task = isinstance(subsection, Task)
        return SubsectionResponse(
            id=subsection.id,
            type=subsection.subsection_type.value,
            name=subsection.name,
            section_id=subsection.section_id,
            course_id=subsection.course_id,
            content=subsection.content,
            deadline=subsection.deadline if is_task else None,
            max_attempts=subsection.max_attempts if is_task else None,
            created_at=subsection.created_at,
            updated_at=subsection.updated_at,
            version=subsection.version
        )

    def _grade_to_response(self, grade: Grade, task: Optional[Task] = None) -> GradeResponse:
        """Convert Grade entity to response model; with its task, include the attempt state."""
        state: Optional[AttemptState] = None
        remaining = None
        if task is not None:
            state = derive_attempt_state(grade, task)
            remaining = remaining_attempts_for(grade, task)
        return GradeResponse(
            task_id=grade.task_id,
            student_id=grade.student_id,
            passed=grade.passed,
            attempts=grade.attempts,
            feedback=grade.feedback,
            graded_at=grade.graded_at,
            grader_id=grade.grader_id,
            state=state.value if state else None,
            remaining_attempts=remaining
        )

    def _task_views_to_response(self, views) -> List[TaskViewResponse]:
        return [self._task_view_to_response(view) for view in views]

    def _task_view_to_response(self, view: TaskView) -> TaskViewResponse:
        return TaskViewResponse(
            task=self._subsection_to_response(view.task),
            course_name=view.course_name,
            student_id=view.student_id,
            grade=self._grade_to_response(view.grade) if view.grade else None,
            state=view.state.value if view.state else None,
            can_attempt=view.can_attempt if view.student_id else None,
            remaining_attempts=view.remaining_attempts
        )
