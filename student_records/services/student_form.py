"""Create/edit form handling for a single student record."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from ..models import StudentInput, StudentRecord
from ..utils.errors import EnrollmentConflictError, StoreError
from .student_store import StudentStore

logger = logging.getLogger(__name__)

FIELDS = ('name', 'birth_date', 'course', 'enrollment_number')

FIELD_MESSAGES: Dict[str, Dict[str, str]] = {
    'name': {
        'too_short': 'Name must be at least 3 characters.',
        'too_long': 'Name must be at most 100 characters.',
    },
    'birth_date': {
        'too_short': 'Birth date is required.',
        'invalid': 'Birth date must be a valid date.',
    },
    'course': {
        'too_short': 'Course must be at least 2 characters.',
        'too_long': 'Course must be at most 100 characters.',
    },
    'enrollment_number': {
        'too_short': 'Enrollment number must be at least 3 characters.',
        'too_long': 'Enrollment number must be at most 50 characters.',
    },
}

CONFLICT_MESSAGE = 'Enrollment number already exists. Please use a unique enrollment number.'
SAVE_FAILED_MESSAGE = 'An error occurred while saving the student.'
CREATED_MESSAGE = 'Student registered successfully.'
UPDATED_MESSAGE = 'Student updated successfully.'

# Validation errors may be located by column alias; report them by form field.
_FIELD_BY_ALIAS = {info.alias: name for name, info in StudentInput.model_fields.items() if info.alias}


@dataclass(frozen=True)
class Notification:
    """A transient message shown to the user after an action."""

    title: str
    message: str
    category: str = 'success'

    @classmethod
    def success(cls, message: str) -> 'Notification':
        return cls('Success!', message, 'success')

    @classmethod
    def error(cls, message: str) -> 'Notification':
        return cls('Error', message, 'danger')


@dataclass
class FormResult:
    submitted: bool = False
    succeeded: bool = False
    errors: Dict[str, str] = field(default_factory=dict)
    notification: Optional[Notification] = None


class StudentForm:
    """Validate and submit create/update requests for one student.

    ``student`` selects the mode: ``None`` creates a new record, an existing
    :class:`StudentRecord` updates it. ``on_success`` runs only after the store
    accepted the write; ``on_cancel`` runs from :meth:`cancel`.
    """

    def __init__(
        self,
        store: StudentStore,
        student: Optional[StudentRecord] = None,
        on_success: Optional[Callable[[], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        self._store = store
        self.student = student
        self._on_success = on_success
        self._on_cancel = on_cancel

    @property
    def is_edit(self) -> bool:
        return self.student is not None

    @property
    def enrollment_editable(self) -> bool:
        return not self.is_edit

    def initial_values(self) -> Dict[str, str]:
        if self.student:
            return self.student.form_values()
        return {name: '' for name in FIELDS}

    def validate(self, values: Mapping[str, str]) -> tuple[Optional[StudentInput], Dict[str, str]]:
        """Return the parsed input, or ``None`` plus field-level messages."""

        raw = {name: values.get(name) or '' for name in FIELDS}
        try:
            return StudentInput(**raw), {}
        except ValidationError as exc:
            errors: Dict[str, str] = {}
            for error in exc.errors():
                field_name = str(error['loc'][0]) if error['loc'] else ''
                field_name = _FIELD_BY_ALIAS.get(field_name, field_name)
                if field_name not in FIELD_MESSAGES or field_name in errors:
                    continue
                errors[field_name] = _message_for(field_name, error['type'], raw[field_name])
            return None, errors

    def submit(self, values: Mapping[str, str]) -> FormResult:
        """Validate ``values`` and issue at most one write to the store."""

        student_input, errors = self.validate(values)
        if student_input is None:
            return FormResult(errors=errors)

        if self.student:
            try:
                self._store.update_student(self.student.id, student_input)
            except StoreError as exc:
                return FormResult(
                    submitted=True,
                    notification=Notification.error(exc.message or SAVE_FAILED_MESSAGE),
                )
            notification = Notification.success(UPDATED_MESSAGE)
        else:
            try:
                self._store.insert_student(student_input)
            except EnrollmentConflictError:
                logger.info('Enrollment number %s already exists', student_input.enrollment_number)
                return FormResult(submitted=True, notification=Notification.error(CONFLICT_MESSAGE))
            except StoreError as exc:
                return FormResult(
                    submitted=True,
                    notification=Notification.error(exc.message or SAVE_FAILED_MESSAGE),
                )
            notification = Notification.success(CREATED_MESSAGE)

        if self._on_success:
            self._on_success()
        return FormResult(submitted=True, succeeded=True, notification=notification)

    def cancel(self) -> None:
        if self._on_cancel:
            self._on_cancel()


def _message_for(field_name: str, error_type: str, raw_value: str) -> str:
    messages = FIELD_MESSAGES[field_name]
    if field_name == 'birth_date':
        return messages['too_short'] if not raw_value else messages['invalid']
    if error_type == 'string_too_long':
        return messages['too_long']
    return messages['too_short']
