from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import redis
from pydantic import ValidationError
from supabase import Client as SupabaseClient, create_client

from ..models import StudentInput, StudentRecord
from ..utils.errors import (
    UNIQUE_VIOLATION,
    EnrollmentConflictError,
    StoreError,
    store_error_from,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLE = 'alunos'
ORDER_COLUMN = 'nome'
UNIQUE_COLUMN = 'matricula'


class StudentStore:
    """Record store client for the students collection.

    Talks to Supabase when credentials are configured. Without them the four
    operations run against a local JSON document kept in Redis (when
    ``UPSTASH_REDIS_URL`` is set) or under ``STORAGE_DATA_DIR``, so the app can
    be exercised without a hosted project.
    """

    def __init__(self, supabase: Optional[SupabaseClient] = None, table: Optional[str] = None) -> None:
        self._table = table or os.getenv('STUDENTS_TABLE', DEFAULT_TABLE)
        self._supabase: Optional[SupabaseClient] = supabase or self._init_supabase()
        self._redis: Optional[Any] = None if self._supabase else self._init_redis()

        data_dir = Path(os.getenv('STORAGE_DATA_DIR', '/tmp/student-records-data')).expanduser()
        data_dir.mkdir(parents=True, exist_ok=True)
        self._data_dir = data_dir.resolve()

    @property
    def backend(self) -> str:
        if self._supabase:
            return 'supabase'
        if self._redis is not None:
            return 'redis'
        return 'filesystem'

    def list_students(self) -> List[StudentRecord]:
        """Return every student ordered by name."""

        if self._supabase:
            response = self._execute(
                self._supabase.table(self._table).select('*').order(ORDER_COLUMN),
                'Error loading students.',
            )
            rows = getattr(response, 'data', None) or []
        else:
            rows = sorted(self._load_rows(), key=lambda row: str(row.get(ORDER_COLUMN) or ''))

        logger.debug('Fetched %d students from %s', len(rows), self.backend)
        try:
            return [StudentRecord.from_row(row) for row in rows]
        except ValidationError as exc:
            logger.warning('Malformed student row in %s', self._table, exc_info=True)
            raise StoreError('Error loading students.') from exc

    def insert_student(self, student: StudentInput) -> None:
        row = student.to_row()

        if self._supabase:
            self._execute(
                self._supabase.table(self._table).insert([row]),
                'An error occurred while saving the student.',
            )
            logger.info('Inserted student %s', row[UNIQUE_COLUMN])
            return

        rows = self._load_rows()
        if any(existing.get(UNIQUE_COLUMN) == row[UNIQUE_COLUMN] for existing in rows):
            raise EnrollmentConflictError(
                f'duplicate key value violates unique constraint "{self._table}_{UNIQUE_COLUMN}_key"',
                UNIQUE_VIOLATION,
            )
        row['id'] = str(uuid4())
        rows.append(row)
        self._save_rows(rows)
        logger.info('Inserted student %s', row[UNIQUE_COLUMN])

    def update_student(self, student_id: str, student: StudentInput) -> None:
        row = student.to_row()

        if self._supabase:
            self._execute(
                self._supabase.table(self._table).update(row).eq('id', student_id),
                'An error occurred while saving the student.',
            )
            logger.info('Updated student %s', student_id)
            return

        rows = self._load_rows()
        if any(
            existing.get(UNIQUE_COLUMN) == row[UNIQUE_COLUMN] and str(existing.get('id')) != student_id
            for existing in rows
        ):
            raise EnrollmentConflictError(
                f'duplicate key value violates unique constraint "{self._table}_{UNIQUE_COLUMN}_key"',
                UNIQUE_VIOLATION,
            )
        # Like a filtered UPDATE, an unknown id matches no rows and is not an error.
        for existing in rows:
            if str(existing.get('id')) == student_id:
                existing.update(row)
        self._save_rows(rows)
        logger.info('Updated student %s', student_id)

    def delete_student(self, student_id: str) -> None:
        if self._supabase:
            self._execute(
                self._supabase.table(self._table).delete().eq('id', student_id),
                'An error occurred while deleting the student.',
            )
            logger.info('Deleted student %s', student_id)
            return

        rows = [row for row in self._load_rows() if str(row.get('id')) != student_id]
        self._save_rows(rows)
        logger.info('Deleted student %s', student_id)

    # --- Private helpers -------------------------------------------------

    def _execute(self, query: Any, fallback: str) -> Any:
        try:
            response = query.execute()
        except Exception as exc:
            logger.warning('Supabase request on %s failed', self._table, exc_info=True)
            raise store_error_from(exc, fallback) from exc
        return response

    def _init_supabase(self) -> Optional[SupabaseClient]:
        url = self._get_env_value(
            'SUPABASE_URL',
            'SUPABASE_PROJECT_URL',
        )
        key = self._get_env_value(
            'SUPABASE_SERVICE_ROLE_KEY',
            'SUPABASE_ANON_KEY',
            'SUPABASE_API_KEY',
        )
        if not url or not key:
            logger.info('Supabase disabled (missing env); using local student storage')
            return None
        try:
            client = create_client(url, key)
        except Exception as exc:
            logger.warning('Supabase init failed: %s', exc)
            return None
        logger.info('Supabase client initialised for %s', url)
        return client

    def _init_redis(self) -> Optional[Any]:
        """Initialise a Redis client when ``UPSTASH_REDIS_URL`` is configured."""

        redis_url = os.getenv('UPSTASH_REDIS_URL')
        if not redis_url:
            return None
        try:
            return redis.from_url(redis_url, decode_responses=True)
        except Exception:  # pragma: no cover - network dependent
            logger.warning('Redis init failed; using filesystem storage', exc_info=True)
            return None

    def _load_rows(self) -> List[Dict[str, Any]]:
        data = self._read_json(self._students_path())
        if data is None:
            return []
        if not isinstance(data, list):
            # Anything other than a list is corrupt, not empty.
            logger.error('Student storage for %s is not a list', self._table)
            raise StoreError('Error loading students.')
        return [row for row in data if isinstance(row, dict)]

    def _save_rows(self, rows: List[Dict[str, Any]]) -> None:
        self._write_json(self._students_path(), rows)

    def _write_json(self, path: Path, data) -> None:
        if self._redis is not None:
            try:
                self._redis.set(self._redis_key(path), json.dumps(data))
                return
            except Exception as exc:
                logger.warning('Redis write failed for %s', path.name, exc_info=True)
                raise StoreError(str(exc) or 'Unable to save students.') from exc

        path.parent.mkdir(parents=True, exist_ok=True)
        # Write beside the target and swap it in so readers never see a partial document.
        tmp_path = path.with_name(f'.{path.name}.{uuid4().hex}.tmp')
        try:
            tmp_path.write_text(json.dumps(data, indent=2))
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.warning('Writing %s failed', path, exc_info=True)
            tmp_path.unlink(missing_ok=True)
            raise StoreError('Unable to save students.') from exc

    def _read_json(self, path: Path):
        if self._redis is not None:
            try:
                raw = self._redis.get(self._redis_key(path))
            except Exception as exc:
                logger.warning('Redis read failed for %s', path.name, exc_info=True)
                raise StoreError(str(exc) or 'Error loading students.') from exc
            if raw is None:
                return None
            if isinstance(raw, bytes):
                raw = raw.decode('utf-8')
            try:
                return json.loads(raw)
            except json.JSONDecodeError as exc:
                logger.error('Redis value was not valid JSON for %s', path.name)
                raise StoreError('Error loading students.') from exc

        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            logger.error('Student storage file %s is not valid JSON', path)
            raise StoreError('Error loading students.') from exc

    def _redis_key(self, path: Path) -> str:
        return f'student_records:{path.name}'

    def _students_path(self) -> Path:
        return self._data_dir / f'{self._table}.json'

    @staticmethod
    def _get_env_value(*names: str) -> Optional[str]:
        for name in names:
            value = os.getenv(name)
            if value:
                return value
        return None

