from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from .models import StudentRecord
from .services.roster import ALL_COURSES, DeleteConfirmation, RosterPage
from .services.student_form import FIELDS, FormResult, Notification, StudentForm

main_bp = Blueprint('main', __name__)

logger = logging.getLogger(__name__)


def _flash(notification: Optional[Notification]) -> None:
    if notification:
        flash(notification.message, notification.category)


def _load_page() -> RosterPage:
    """Build the page state for this request and fetch the collection once."""

    page = RosterPage(
        store=current_app.student_store,
        search=request.args.get('q', ''),
        course_filter=request.args.get('course', ALL_COURSES) or ALL_COURSES,
    )
    _flash(page.load())
    return page


def _render_page(
    page: RosterPage,
    form: Optional[StudentForm] = None,
    values: Optional[Dict[str, str]] = None,
    errors: Optional[Dict[str, str]] = None,
) -> str:
    deletion = DeleteConfirmation(session)
    pending = page.find(deletion.pending_id) if deletion.is_pending else None
    if form is not None and values is None:
        values = form.initial_values()

    return render_template(
        'index.html',
        page=page,
        students=page.filtered,
        stats=page.stats(),
        all_courses=ALL_COURSES,
        filter_args=_filter_args(page),
        form=form,
        values=values or {},
        errors=errors or {},
        pending_delete=pending,
        delete_pending=deletion.is_pending,
    )


def _filter_args(page: RosterPage) -> Dict[str, Optional[str]]:
    return {
        'q': page.search or None,
        'course': None if page.course_filter == ALL_COURSES else page.course_filter,
    }


def _submitted_values(student: Optional[StudentRecord]) -> Dict[str, str]:
    values = {name: request.form.get(name, '') for name in FIELDS}
    # Disabled inputs are not posted; in edit mode keep the stored enrollment number.
    if student is not None and 'enrollment_number' not in request.form:
        values['enrollment_number'] = student.enrollment_number
    return values


def _handle_submission(page: RosterPage, form: StudentForm) -> str | Response:
    values = _submitted_values(form.student)
    result: FormResult = form.submit(values)
    _flash(result.notification)

    if result.succeeded:
        # The page reloads the collection on the redirected GET.
        return redirect(_index_url())

    return _render_page(page, form=form, values=values, errors=result.errors)


def _index_url() -> str:
    """Roster URL carrying the current search and course filter."""

    course = request.args.get('course')
    return url_for(
        'main.index',
        q=request.args.get('q') or None,
        course=course if course and course != ALL_COURSES else None,
    )


@main_bp.route('/')
def index() -> str:
    page = _load_page()
    return _render_page(page)


@main_bp.route('/students/new', methods=['GET', 'POST'])
def new_student() -> str | Response:
    page = _load_page()
    page.modal.open_add()
    form = StudentForm(current_app.student_store, on_success=page.modal.close, on_cancel=page.modal.close)

    if request.method == 'POST':
        return _handle_submission(page, form)
    return _render_page(page, form=form)


@main_bp.route('/students/<student_id>/edit', methods=['GET', 'POST'])
def edit_student(student_id: str) -> str | Response:
    page = _load_page()
    student = page.find(student_id)
    if student is None:
        if page.load_error is None:
            flash('Student not found.', 'danger')
        return redirect(url_for('main.index'))

    page.modal.open_edit(student)
    form = StudentForm(
        current_app.student_store,
        student=student,
        on_success=page.modal.close,
        on_cancel=page.modal.close,
    )

    if request.method == 'POST':
        return _handle_submission(page, form)
    return _render_page(page, form=form)


@main_bp.route('/students/<student_id>/delete', methods=['POST'])
def request_delete(student_id: str) -> Response:
    DeleteConfirmation(session).request(student_id)
    logger.debug('Delete pending for student %s', student_id)
    return redirect(_index_url())


@main_bp.route('/students/delete/confirm', methods=['POST'])
def confirm_delete() -> Response:
    deletion = DeleteConfirmation(session)
    notification = deletion.confirm(current_app.student_store)
    _flash(notification)
    # The redirected GET is the single reload after a delete.
    return redirect(_index_url())


@main_bp.route('/students/delete/cancel', methods=['POST'])
def cancel_delete() -> Response:
    DeleteConfirmation(session).cancel()
    return redirect(_index_url())


@main_bp.route('/api/students')
def api_students() -> tuple[Dict[str, Any], int]:
    page = RosterPage(
        store=current_app.student_store,
        search=request.args.get('q', ''),
        course_filter=request.args.get('course', ALL_COURSES) or ALL_COURSES,
    )
    notification = page.load()
    if notification:
        return {'error': notification.message}, 502
    return page.to_dict(), 200
