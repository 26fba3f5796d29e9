from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Iterable, List, MutableMapping, Optional

from ..models import StudentRecord
from ..utils.errors import StoreError
from .student_form import Notification
from .student_store import StudentStore

logger = logging.getLogger(__name__)

ALL_COURSES = 'all'
LOAD_FAILED_MESSAGE = 'Error loading students.'
DELETED_MESSAGE = 'Student deleted successfully.'
DELETE_FAILED_MESSAGE = 'An error occurred while deleting the student.'


def distinct_courses(students: Iterable[StudentRecord]) -> List[str]:
    """Return each course once, in order of first appearance."""

    return list(dict.fromkeys(student.course for student in students))


def filter_students(
    students: Iterable[StudentRecord],
    search: str = '',
    course: str = ALL_COURSES,
) -> List[StudentRecord]:
    """Apply the search box and course dropdown to ``students``.

    The search matches name or enrollment number as a case-insensitive
    substring; the course filter is an exact match unless it is ``'all'``.
    """

    needle = search.casefold()
    filtered = []
    for student in students:
        if needle and needle not in student.name.casefold() and needle not in student.enrollment_number.casefold():
            continue
        if course != ALL_COURSES and student.course != course:
            continue
        filtered.append(student)
    return filtered


@dataclass
class ModalState:
    """Add/edit dialog. ``target`` is ``None`` when adding."""

    open: bool = False
    target: Optional[StudentRecord] = None

    def open_add(self) -> None:
        self.open = True
        self.target = None

    def open_edit(self, student: StudentRecord) -> None:
        self.open = True
        self.target = student

    def close(self) -> None:
        self.open = False
        self.target = None


@dataclass
class RosterPage:
    """Page-owned view state over the full student collection."""

    store: StudentStore
    students: List[StudentRecord] = field(default_factory=list)
    courses: List[str] = field(default_factory=list)
    search: str = ''
    course_filter: str = ALL_COURSES
    modal: ModalState = field(default_factory=ModalState)
    load_error: Optional[Notification] = None

    def load(self) -> Optional[Notification]:
        """Fetch the whole collection and re-derive the course options.

        On failure the collection is left empty and the returned notification
        describes the error.
        """

        try:
            students = self.store.list_students()
        except StoreError as exc:
            logger.warning('Loading students failed: %s', exc.message)
            self.students = []
            self.courses = []
            self.load_error = Notification.error(exc.message or LOAD_FAILED_MESSAGE)
            return self.load_error

        self.students = students
        self.courses = distinct_courses(students)
        self.load_error = None
        return None

    @property
    def filtered(self) -> List[StudentRecord]:
        return filter_students(self.students, self.search, self.course_filter)

    def find(self, student_id: str) -> Optional[StudentRecord]:
        for student in self.students:
            if student.id == student_id:
                return student
        return None

    def stats(self) -> Dict[str, int]:
        return {
            'total': len(self.students),
            'courses': len(self.courses),
            'results': len(self.filtered),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'students': [student.model_dump(mode='json') for student in self.filtered],
            'courses': list(self.courses),
            'search': self.search,
            'course': self.course_filter,
            'stats': self.stats(),
        }


class DeleteConfirmation:
    """Two-step delete: a row click holds the target, confirming deletes it.

    The pending id lives in ``state`` (the user session in the web app) so the
    dialog survives the round-trip between opening and confirming.
    """

    SESSION_KEY = 'pending_delete'

    def __init__(self, state: MutableMapping[str, Any]) -> None:
        self._state = state

    @property
    def pending_id(self) -> Optional[str]:
        return self._state.get(self.SESSION_KEY)

    @property
    def is_pending(self) -> bool:
        return self.pending_id is not None

    def request(self, student_id: str) -> None:
        self._state[self.SESSION_KEY] = str(student_id)

    def cancel(self) -> None:
        self._state.pop(self.SESSION_KEY, None)

    def confirm(self, store: StudentStore, on_delete=None) -> Optional[Notification]:
        """Delete the pending student; returns ``None`` when nothing was pending."""

        student_id = self.pending_id
        if student_id is None:
            return None

        try:
            store.delete_student(student_id)
        except StoreError as exc:
            return Notification.error(exc.message or DELETE_FAILED_MESSAGE)
        else:
            if on_delete:
                on_delete()
            return Notification.success(DELETED_MESSAGE)
        finally:
            self.cancel()
