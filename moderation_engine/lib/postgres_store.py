"""
PostgreSQL-backed moderation store.

Entities are stored as JSONB documents next to the indexed columns the
engine filters on. Per-entity linearizability comes from
``SELECT ... FOR UPDATE`` plus a version check on every update; violation
creation is serialized per user with a transaction-scoped advisory lock.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar
from uuid import UUID

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json
from pydantic import BaseModel

from moderation_engine.lib.database import DatabaseConnection
from moderation_engine.lib.errors import Conflict, DuplicateVersion, NotFound
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.content import ContentRef, ModerationCase
from moderation_engine.models.enums import CaseStatus, OPEN_REPORT_STATUSES
from moderation_engine.models.guidelines import GuidelineVersion
from moderation_engine.models.report import ContentReport
from moderation_engine.models.violation import UserViolation

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)


class PostgresStore(ModerationStore):

    def __init__(self, db: DatabaseConnection):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator['_PostgresTransaction']:
        with self.db.get_cursor() as cursor:
            yield _PostgresTransaction(cursor)


class _PostgresTransaction(Transaction):

    def __init__(self, cursor):
        super().__init__()
        self.cursor = cursor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load(model: Type[M], row: Optional[Dict[str, Any]]) -> Optional[M]:
        if row is None:
            return None
        doc = dict(row['doc'])
        if 'version' in row:
            doc['version'] = row['version']
        return model.model_validate(doc)

    def _fetch_one(self, model: Type[M], query: str, params: tuple) -> Optional[M]:
        self.cursor.execute(query, params)
        return self._load(model, self.cursor.fetchone())

    def _fetch_all(self, model: Type[M], query: str, params: tuple = ()) -> List[M]:
        self.cursor.execute(query, params)
        return [self._load(model, row) for row in self.cursor.fetchall()]

    # ------------------------------------------------------------------
    # Guideline versions
    # ------------------------------------------------------------------

    def get_guideline(self, version: str) -> Optional[GuidelineVersion]:
        self.cursor.execute(
            "SELECT doc, is_active FROM guideline_versions WHERE version = %s",
            (version,),
        )
        row = self.cursor.fetchone()
        if row is None:
            return None
        guideline = GuidelineVersion.model_validate(row['doc'])
        return guideline.model_copy(update={'is_active': row['is_active']})

    def get_active_guideline_id(self) -> Optional[str]:
        self.cursor.execute("SELECT version FROM guideline_versions WHERE is_active")
        row = self.cursor.fetchone()
        return row['version'] if row else None

    def list_guidelines(self) -> List[GuidelineVersion]:
        self.cursor.execute(
            "SELECT doc, is_active FROM guideline_versions ORDER BY effective_date ASC"
        )
        return [
            GuidelineVersion.model_validate(row['doc']).model_copy(update={'is_active': row['is_active']})
            for row in self.cursor.fetchall()
        ]

    def insert_guideline(self, guideline: GuidelineVersion) -> None:
        self.cursor.execute(
            """
            INSERT INTO guideline_versions (version, is_active, effective_date, doc)
            VALUES (%s, FALSE, %s, %s)
            ON CONFLICT (version) DO NOTHING
            """,
            (guideline.version, guideline.effective_date,
             Json(guideline.model_dump(mode='json'))),
        )
        if self.cursor.rowcount == 0:
            raise DuplicateVersion(f"Guideline version {guideline.version} already exists")

    def set_active_guideline(self, version: str) -> None:
        # Lock the whole table so concurrent activations cannot interleave.
        self.cursor.execute("LOCK TABLE guideline_versions IN SHARE ROW EXCLUSIVE MODE")
        self.cursor.execute(
            "UPDATE guideline_versions SET is_active = FALSE WHERE is_active AND version <> %s",
            (version,),
        )
        self.cursor.execute(
            "UPDATE guideline_versions SET is_active = TRUE WHERE version = %s",
            (version,),
        )
        if self.cursor.rowcount == 0:
            raise NotFound(f"Guideline version {version} not found")

    # ------------------------------------------------------------------
    # Moderation cases
    # ------------------------------------------------------------------

    def get_case(self, case_id: UUID, for_update: bool = False) -> Optional[ModerationCase]:
        query = "SELECT doc, version FROM moderation_cases WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        return self._fetch_one(ModerationCase, query, (str(case_id),))

    def find_case(self, ref: ContentRef, for_update: bool = False) -> Optional[ModerationCase]:
        query = "SELECT doc, version FROM moderation_cases WHERE content_type = %s AND content_id = %s"
        if for_update:
            query += " FOR UPDATE"
        return self._fetch_one(ModerationCase, query, (ref.content_type.value, ref.content_id))

    def put_case(self, case: ModerationCase) -> None:
        payload = {
            "id": str(case.id),
            "content_type": case.content.content_type.value,
            "content_id": case.content.content_id,
            "status": case.status.value,
            "awaiting_review": case.awaiting_review,
            "version": case.version,
            "doc": Json(case.model_dump(mode='json', exclude={'version'})),
            "created_at": case.created_at,
        }
        self.cursor.execute(
            """
            UPDATE moderation_cases
            SET status = %(status)s, awaiting_review = %(awaiting_review)s,
                doc = %(doc)s, version = version + 1
            WHERE id = %(id)s AND version = %(version)s
            """,
            payload,
        )
        if self.cursor.rowcount:
            case.version += 1
            return
        if self.get_case(case.id) is not None:
            raise Conflict(f"Moderation case {case.id} was modified concurrently")
        try:
            self.cursor.execute("SAVEPOINT put_case")
            self.cursor.execute(
                """
                INSERT INTO moderation_cases (
                    id, content_type, content_id, status, awaiting_review,
                    version, doc, created_at
                )
                VALUES (
                    %(id)s, %(content_type)s, %(content_id)s, %(status)s, %(awaiting_review)s,
                    1, %(doc)s, %(created_at)s
                )
                """,
                payload,
            )
            self.cursor.execute("RELEASE SAVEPOINT put_case")
            case.version = 1
        except pg_errors.UniqueViolation:
            self.cursor.execute("ROLLBACK TO SAVEPOINT put_case")
            raise Conflict(
                f"A case already exists for {case.content.content_type.value}/{case.content.content_id}"
            )

    def list_cases_awaiting_review(self) -> List[ModerationCase]:
        return self._fetch_all(
            ModerationCase,
            """
            SELECT doc, version FROM moderation_cases
            WHERE awaiting_review AND status = ANY(%s)
            """,
            ([CaseStatus.PENDING.value, CaseStatus.UNDER_REVIEW.value],),
        )

    # ------------------------------------------------------------------
    # Content reports
    # ------------------------------------------------------------------

    def get_report(self, report_id: UUID, for_update: bool = False) -> Optional[ContentReport]:
        query = "SELECT doc, version FROM content_reports WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        return self._fetch_one(ContentReport, query, (str(report_id),))

    def put_report(self, report: ContentReport) -> None:
        payload = {
            "id": str(report.id),
            "case_id": str(report.case_id),
            "status": report.status.value,
            "fingerprint": report.fingerprint,
            "appeal_open": bool(report.appeal and report.appeal.is_open),
            "version": report.version,
            "doc": Json(report.model_dump(mode='json', exclude={'version'})),
            "created_at": report.created_at,
        }
        self.cursor.execute(
            """
            UPDATE content_reports
            SET status = %(status)s, appeal_open = %(appeal_open)s,
                doc = %(doc)s, version = version + 1
            WHERE id = %(id)s AND version = %(version)s
            """,
            payload,
        )
        if self.cursor.rowcount:
            report.version += 1
            return
        if self.get_report(report.id) is not None:
            raise Conflict(f"Report {report.id} was modified concurrently")
        self.cursor.execute(
            """
            INSERT INTO content_reports (
                id, case_id, status, fingerprint, appeal_open, version, doc, created_at
            )
            VALUES (
                %(id)s, %(case_id)s, %(status)s, %(fingerprint)s, %(appeal_open)s,
                1, %(doc)s, %(created_at)s
            )
            """,
            payload,
        )
        report.version = 1

    def find_report_by_fingerprint(self, fingerprint: str, since: datetime) -> Optional[ContentReport]:
        return self._fetch_one(
            ContentReport,
            """
            SELECT doc, version FROM content_reports
            WHERE fingerprint = %s AND created_at >= %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (fingerprint, since),
        )

    def list_open_reports(self) -> List[ContentReport]:
        return self._fetch_all(
            ContentReport,
            "SELECT doc, version FROM content_reports WHERE status = ANY(%s)",
            ([s.value for s in OPEN_REPORT_STATUSES],),
        )

    def list_reports_for_case(self, case_id: UUID) -> List[ContentReport]:
        return self._fetch_all(
            ContentReport,
            "SELECT doc, version FROM content_reports WHERE case_id = %s ORDER BY created_at ASC",
            (str(case_id),),
        )

    def list_reports_with_open_appeal(self) -> List[ContentReport]:
        return self._fetch_all(
            ContentReport,
            "SELECT doc, version FROM content_reports WHERE appeal_open ORDER BY created_at ASC",
        )

    # ------------------------------------------------------------------
    # User violations
    # ------------------------------------------------------------------

    def get_violation(self, violation_id: UUID, for_update: bool = False) -> Optional[UserViolation]:
        query = "SELECT doc, version FROM user_violations WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        return self._fetch_one(UserViolation, query, (str(violation_id),))

    def put_violation(self, violation: UserViolation) -> None:
        payload = {
            "id": str(violation.id),
            "user_id": violation.user_id,
            "related_report_id": str(violation.related_report_id) if violation.related_report_id else None,
            "is_expired": violation.is_expired,
            "appeal_open": bool(violation.appeal and violation.appeal.is_open),
            "version": violation.version,
            "doc": Json(violation.model_dump(mode='json', exclude={'version'})),
            "created_at": violation.created_at,
        }
        self.cursor.execute(
            """
            UPDATE user_violations
            SET is_expired = %(is_expired)s, appeal_open = %(appeal_open)s,
                doc = %(doc)s, version = version + 1
            WHERE id = %(id)s AND version = %(version)s
            """,
            payload,
        )
        if self.cursor.rowcount:
            violation.version += 1
            return
        if self.get_violation(violation.id) is not None:
            raise Conflict(f"Violation {violation.id} was modified concurrently")
        self.cursor.execute(
            """
            INSERT INTO user_violations (
                id, user_id, related_report_id, is_expired, appeal_open, version, doc, created_at
            )
            VALUES (
                %(id)s, %(user_id)s, %(related_report_id)s, %(is_expired)s, %(appeal_open)s,
                1, %(doc)s, %(created_at)s
            )
            """,
            payload,
        )
        violation.version = 1

    def list_violations_for_user(self, user_id: str) -> List[UserViolation]:
        return self._fetch_all(
            UserViolation,
            "SELECT doc, version FROM user_violations WHERE user_id = %s ORDER BY created_at DESC",
            (user_id,),
        )

    def list_violations_for_report(self, report_id: UUID) -> List[UserViolation]:
        return self._fetch_all(
            UserViolation,
            "SELECT doc, version FROM user_violations WHERE related_report_id = %s",
            (str(report_id),),
        )

    def list_unexpired_violations(self) -> List[UserViolation]:
        return self._fetch_all(
            UserViolation,
            "SELECT doc, version FROM user_violations WHERE NOT is_expired",
        )

    def list_violations_with_open_appeal(self) -> List[UserViolation]:
        return self._fetch_all(
            UserViolation,
            "SELECT doc, version FROM user_violations WHERE appeal_open ORDER BY created_at ASC",
        )

    def advisory_lock(self, key: str) -> None:
        self.cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (key,))
