from __future__ import annotations

from datetime import date
from unittest import TestCase
from unittest.mock import MagicMock

from student_records.models import StudentRecord
from student_records.services.roster import (
    ALL_COURSES,
    DELETED_MESSAGE,
    DeleteConfirmation,
    RosterPage,
    distinct_courses,
    filter_students,
)
from student_records.services.student_store import StudentStore
from student_records.utils.errors import StoreError


def _record(student_id: str, name: str, course: str, enrollment: str) -> StudentRecord:
    return StudentRecord(
        id=student_id,
        name=name,
        birth_date=date(2000, 1, 1),
        course=course,
        enrollment_number=enrollment,
    )


ANA = _record('a', 'Ana', 'CS', '1')
BEA = _record('b', 'Bea', 'Law', '2')


class FilterStudentsTests(TestCase):
    def test_search_matches_name_case_insensitively(self) -> None:
        self.assertEqual([ANA], filter_students([ANA, BEA], search='an'))

    def test_course_filter_is_exact(self) -> None:
        self.assertEqual([BEA], filter_students([ANA, BEA], course='Law'))
        self.assertEqual([], filter_students([ANA, BEA], course='law'))

    def test_all_with_empty_search_returns_everything(self) -> None:
        self.assertEqual([ANA, BEA], filter_students([ANA, BEA], search='', course=ALL_COURSES))

    def test_search_matches_enrollment_number(self) -> None:
        self.assertEqual([BEA], filter_students([ANA, BEA], search='2'))

    def test_search_and_course_combine(self) -> None:
        cara = _record('c', 'Cara Banks', 'CS', '3')

        self.assertEqual([cara], filter_students([ANA, BEA, cara], search='BAN', course='CS'))

    def test_search_folds_non_ascii_case(self) -> None:
        joao = _record('j', 'JOÃO Silva', 'CS', '9')

        self.assertEqual([joao], filter_students([ANA, joao], search='joão'))

    def test_order_of_input_is_preserved(self) -> None:
        self.assertEqual([BEA, ANA], filter_students([BEA, ANA]))


class DistinctCoursesTests(TestCase):
    def test_deduplicates_in_first_occurrence_order(self) -> None:
        students = [
            _record('1', 'Ana', 'CS', '1'),
            _record('2', 'Bea', 'Law', '2'),
            _record('3', 'Cid', 'CS', '3'),
        ]

        self.assertEqual(['CS', 'Law'], distinct_courses(students))

    def test_empty_collection_has_no_courses(self) -> None:
        self.assertEqual([], distinct_courses([]))


class RosterPageTests(TestCase):
    def setUp(self) -> None:
        self.store = MagicMock(spec=StudentStore)
        self.store.list_students.return_value = [ANA, BEA, _record('c', 'Cid', 'CS', '3')]

    def test_load_populates_collection_and_courses(self) -> None:
        page = RosterPage(store=self.store)

        self.assertIsNone(page.load())

        self.assertEqual(3, len(page.students))
        self.assertEqual(['CS', 'Law'], page.courses)
        self.store.list_students.assert_called_once_with()

    def test_stats_follow_current_filter(self) -> None:
        page = RosterPage(store=self.store, course_filter='CS')
        page.load()

        self.assertEqual({'total': 3, 'courses': 2, 'results': 2}, page.stats())

        page.search = 'cid'
        self.assertEqual({'total': 3, 'courses': 2, 'results': 1}, page.stats())
        self.store.list_students.assert_called_once_with()

    def test_load_failure_leaves_empty_collection(self) -> None:
        self.store.list_students.side_effect = StoreError('connection reset')
        page = RosterPage(store=self.store)

        notification = page.load()

        self.assertEqual('connection reset', notification.message)
        self.assertEqual('danger', notification.category)
        self.assertEqual([], page.students)
        self.assertEqual([], page.filtered)
        self.assertEqual({'total': 0, 'courses': 0, 'results': 0}, page.stats())

    def test_find_and_modal_lifecycle(self) -> None:
        page = RosterPage(store=self.store)
        page.load()

        self.assertIs(BEA, page.find('b'))
        self.assertIsNone(page.find('missing'))

        page.modal.open_edit(BEA)
        self.assertTrue(page.modal.open)
        self.assertIs(BEA, page.modal.target)

        page.modal.close()
        self.assertFalse(page.modal.open)
        self.assertIsNone(page.modal.target)

        page.modal.open_add()
        self.assertTrue(page.modal.open)
        self.assertIsNone(page.modal.target)

    def test_to_dict_serialises_filtered_view(self) -> None:
        page = RosterPage(store=self.store, search='an')
        page.load()

        payload = page.to_dict()

        self.assertEqual(['Ana'], [s['name'] for s in payload['students']])
        self.assertEqual('2000-01-01', payload['students'][0]['birth_date'])
        self.assertEqual(1, payload['stats']['results'])


class DeleteConfirmationTests(TestCase):
    def setUp(self) -> None:
        self.state = {}
        self.store = MagicMock(spec=StudentStore)
        self.on_delete = MagicMock()
        self.dialog = DeleteConfirmation(self.state)

    def test_confirm_deletes_pending_target_once(self) -> None:
        self.dialog.request('a')
        self.assertTrue(self.dialog.is_pending)

        notification = self.dialog.confirm(self.store, on_delete=self.on_delete)

        self.store.delete_student.assert_called_once_with('a')
        self.on_delete.assert_called_once_with()
        self.assertEqual(DELETED_MESSAGE, notification.message)
        self.assertFalse(self.dialog.is_pending)
        self.assertEqual({}, self.state)

    def test_cancel_issues_no_request(self) -> None:
        self.dialog.request('a')

        self.dialog.cancel()

        self.assertFalse(self.dialog.is_pending)
        self.assertIsNone(self.dialog.confirm(self.store, on_delete=self.on_delete))
        self.store.delete_student.assert_not_called()
        self.on_delete.assert_not_called()

    def test_failure_notifies_and_returns_to_idle(self) -> None:
        self.store.delete_student.side_effect = StoreError('row is locked')
        self.dialog.request('a')

        notification = self.dialog.confirm(self.store, on_delete=self.on_delete)

        self.assertEqual('row is locked', notification.message)
        self.assertEqual('danger', notification.category)
        self.on_delete.assert_not_called()
        self.assertFalse(self.dialog.is_pending)
