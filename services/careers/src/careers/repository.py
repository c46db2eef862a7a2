from __future__ import annotations

import json
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Literal

from common.utils import now_utc_iso

from careers.models import (
    AdminAccount,
    AdminStats,
    Application,
    EmailPreferences,
    Job,
    JobCreateRequest,
    JobUpdateRequest,
    Message,
    MessageSendRequest,
    Principal,
    RecentApplication,
    StoredResumeFile,
    SubjectType,
    UserAccount,
    UserProfileUpdateRequest,
    UserRegisterRequest,
)
from careers.security import hash_password, hash_token, new_session_token, verify_password

PreferenceCategory = Literal["job_alerts", "career_guidance", "notifications", "marketing"]
PREFERENCE_DEFAULTS: dict[str, bool] = EmailPreferences().model_dump()

USER_COLUMNS = """
    id,
    name,
    email,
    phone,
    address,
    profile_summary,
    skills_json,
    created_at,
    updated_at
"""

JOB_COLUMNS = """
    id,
    title,
    company,
    location,
    experience_level,
    salary_range,
    description,
    requirements,
    skills_json,
    job_type,
    status,
    created_by,
    created_at,
    updated_at
"""


class CareersRepository:
    def __init__(self, database_path: str) -> None:
        self.database_path = Path(database_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection is not initialized")
        return self._connection

    def connect(self) -> None:
        with self._lock:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.database_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    phone TEXT,
                    address TEXT,
                    profile_summary TEXT,
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS admins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL DEFAULT 'Admin',
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    token_hash TEXT PRIMARY KEY,
                    subject_type TEXT NOT NULL,
                    subject_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    revoked_at TEXT
                );

                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    company TEXT NOT NULL,
                    location TEXT,
                    experience_level TEXT,
                    salary_range TEXT,
                    description TEXT,
                    requirements TEXT,
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    job_type TEXT NOT NULL DEFAULT 'Full-time',
                    status TEXT NOT NULL DEFAULT 'active',
                    created_by INTEGER REFERENCES admins(id),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS job_applications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                    status TEXT NOT NULL DEFAULT 'applied',
                    notes TEXT,
                    applied_at TEXT NOT NULL,
                    UNIQUE (user_id, job_id)
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sender_id INTEGER,
                    sender_type TEXT NOT NULL,
                    recipient_id INTEGER,
                    recipient_type TEXT NOT NULL,
                    subject TEXT,
                    content TEXT NOT NULL,
                    message_type TEXT NOT NULL DEFAULT 'general',
                    target_skills_json TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS message_reads (
                    message_id INTEGER NOT NULL REFERENCES messages(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    read_at TEXT NOT NULL,
                    PRIMARY KEY (message_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS resume_files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    filename TEXT NOT NULL,
                    original_name TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    mime_type TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS email_preferences (
                    user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                    job_alerts INTEGER NOT NULL DEFAULT 1,
                    career_guidance INTEGER NOT NULL DEFAULT 1,
                    notifications INTEGER NOT NULL DEFAULT 1,
                    marketing INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                );
                """
            )
            self._connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    # Accounts

    def create_user(self, payload: UserRegisterRequest) -> UserAccount | None:
        with self._lock:
            email = str(payload.email).lower()
            existing = self.connection.execute(
                "SELECT id FROM users WHERE email = ?",
                (email,),
            ).fetchone()
            if existing is not None:
                return None

            now = now_utc_iso()
            cursor = self.connection.execute(
                """
                INSERT INTO users (
                    name,
                    email,
                    password_hash,
                    phone,
                    address,
                    profile_summary,
                    skills_json,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.name.strip(),
                    email,
                    hash_password(payload.password),
                    payload.phone,
                    payload.address,
                    payload.profile_summary,
                    json.dumps(payload.skills),
                    now,
                    now,
                ),
            )
            user_id = int(cursor.lastrowid)
            self.connection.execute(
                """
                INSERT INTO email_preferences (
                    user_id,
                    job_alerts,
                    career_guidance,
                    notifications,
                    marketing,
                    updated_at
                )
                VALUES (?, 1, 1, 1, 0, ?)
                """,
                (user_id, now),
            )
            self.connection.commit()
            return self.get_user_or_raise(user_id)

    def authenticate_user(self, email: str, password: str) -> UserAccount | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id, password_hash FROM users WHERE email = ?",
                (email.lower(),),
            ).fetchone()
            if row is None or not verify_password(password, row["password_hash"]):
                return None
            return self.get_user(int(row["id"]))

    def get_user_or_raise(self, user_id: int) -> UserAccount:
        user = self.get_user(user_id)
        if user is None:
            raise KeyError(f"Unknown user_id: {user_id}")
        return user

    def get_user(self, user_id: int) -> UserAccount | None:
        with self._lock:
            row = self.connection.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_user(row)

    def list_users(self) -> list[UserAccount]:
        with self._lock:
            cursor = self.connection.execute(
                f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC, id DESC"
            )
            return [self._to_user(row) for row in cursor.fetchall()]

    def update_user_profile(
        self,
        user_id: int,
        payload: UserProfileUpdateRequest,
    ) -> UserAccount | None:
        with self._lock:
            changes = payload.model_dump(exclude_unset=True)
            assignments: list[str] = []
            params: list[Any] = []
            if changes.get("name") is None:
                changes.pop("name", None)
            for field_name in ("name", "phone", "address", "profile_summary"):
                if field_name in changes:
                    assignments.append(f"{field_name} = ?")
                    params.append(changes[field_name])
            if changes.get("skills") is not None:
                assignments.append("skills_json = ?")
                params.append(json.dumps(changes["skills"]))
            assignments.append("updated_at = ?")
            params.append(now_utc_iso())
            params.append(user_id)

            cursor = self.connection.execute(
                f"UPDATE users SET {', '.join(assignments)} WHERE id = ?",
                tuple(params),
            )
            self.connection.commit()
            if cursor.rowcount == 0:
                return None
            return self.get_user(user_id)

    def ensure_admin(self, *, email: str, password: str, name: str) -> AdminAccount:
        with self._lock:
            email = email.lower()
            row = self.connection.execute(
                "SELECT id FROM admins WHERE email = ?",
                (email,),
            ).fetchone()
            if row is None:
                cursor = self.connection.execute(
                    """
                    INSERT INTO admins (name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, email, hash_password(password), now_utc_iso()),
                )
                self.connection.commit()
                admin_id = int(cursor.lastrowid)
            else:
                admin_id = int(row["id"])
            admin = self.get_admin(admin_id)
            if admin is None:
                raise KeyError(f"Unknown admin_id: {admin_id}")
            return admin

    def authenticate_admin(self, email: str, password: str) -> AdminAccount | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id, password_hash FROM admins WHERE email = ?",
                (email.lower(),),
            ).fetchone()
            if row is None or not verify_password(password, row["password_hash"]):
                return None
            return self.get_admin(int(row["id"]))

    def get_admin(self, admin_id: int) -> AdminAccount | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id, name, email, created_at FROM admins WHERE id = ?",
                (admin_id,),
            ).fetchone()
            if row is None:
                return None
            return AdminAccount(**dict(row))

    # Sessions

    def create_session(
        self,
        subject_type: SubjectType,
        subject_id: int,
        *,
        ttl_hours: int,
    ) -> str:
        with self._lock:
            raw_token = new_session_token()
            now = datetime.now(UTC)
            expires_at = now + timedelta(hours=ttl_hours)
            self.connection.execute(
                """
                INSERT INTO sessions (token_hash, subject_type, subject_id, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    hash_token(raw_token),
                    subject_type,
                    subject_id,
                    now.isoformat(),
                    expires_at.isoformat(),
                ),
            )
            self.connection.commit()
            return raw_token

    def resolve_session(self, token_value: str) -> Principal | None:
        with self._lock:
            token_hash = hash_token(token_value)
            row = self.connection.execute(
                """
                SELECT token_hash, subject_type, subject_id
                FROM sessions
                WHERE token_hash = ?
                  AND revoked_at IS NULL
                  AND expires_at > ?
                """,
                (token_hash, now_utc_iso()),
            ).fetchone()
            if row is None:
                return None
            return Principal(
                subject_type=row["subject_type"],
                subject_id=int(row["subject_id"]),
                token_hash=row["token_hash"],
            )

    def revoke_session(self, token_hash: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                """
                UPDATE sessions
                SET revoked_at = ?
                WHERE token_hash = ? AND revoked_at IS NULL
                """,
                (now_utc_iso(), token_hash),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    # Jobs

    def create_job(self, payload: JobCreateRequest, *, created_by: int | None) -> Job:
        with self._lock:
            now = now_utc_iso()
            cursor = self.connection.execute(
                """
                INSERT INTO jobs (
                    title,
                    company,
                    location,
                    experience_level,
                    salary_range,
                    description,
                    requirements,
                    skills_json,
                    job_type,
                    status,
                    created_by,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.title.strip(),
                    payload.company.strip(),
                    payload.location.strip(),
                    payload.experience_level,
                    payload.salary_range,
                    payload.description,
                    payload.requirements,
                    json.dumps(payload.skills),
                    payload.job_type,
                    payload.status,
                    created_by,
                    now,
                    now,
                ),
            )
            self.connection.commit()
            job = self.get_job(int(cursor.lastrowid), active_only=False)
            if job is None:
                raise KeyError(f"Unknown job_id: {cursor.lastrowid}")
            return job

    def get_job(self, job_id: int, *, active_only: bool = True) -> Job | None:
        with self._lock:
            query = f"SELECT {JOB_COLUMNS} FROM jobs WHERE id = ?"
            if active_only:
                query += " AND status = 'active'"
            row = self.connection.execute(query, (job_id,)).fetchone()
            if row is None:
                return None
            return self._to_job(row)

    def update_job(self, job_id: int, payload: JobUpdateRequest) -> Job | None:
        with self._lock:
            changes = payload.model_dump(exclude_unset=True)
            assignments: list[str] = []
            params: list[Any] = []
            for field_name in (
                "title",
                "company",
                "location",
                "experience_level",
                "salary_range",
                "description",
                "requirements",
                "job_type",
                "status",
            ):
                if changes.get(field_name) is not None:
                    assignments.append(f"{field_name} = ?")
                    params.append(changes[field_name])
            if changes.get("skills") is not None:
                assignments.append("skills_json = ?")
                params.append(json.dumps(changes["skills"]))
            assignments.append("updated_at = ?")
            params.append(now_utc_iso())
            params.append(job_id)

            cursor = self.connection.execute(
                f"UPDATE jobs SET {', '.join(assignments)} WHERE id = ?",
                tuple(params),
            )
            self.connection.commit()
            if cursor.rowcount == 0:
                return None
            return self.get_job(job_id, active_only=False)

    def soft_delete_job(self, job_id: int) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                "UPDATE jobs SET status = 'deleted', updated_at = ? WHERE id = ?",
                (now_utc_iso(), job_id),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def list_jobs(
        self,
        *,
        page: int,
        limit: int,
        search: str | None = None,
        location: str | None = None,
        experience: str | None = None,
    ) -> tuple[list[Job], int]:
        with self._lock:
            filters = ["status = 'active'"]
            params: list[Any] = []
            if search:
                filters.append("(title LIKE ? OR company LIKE ? OR description LIKE ?)")
                pattern = f"%{search}%"
                params.extend([pattern, pattern, pattern])
            if location:
                filters.append("location LIKE ?")
                params.append(f"%{location}%")
            if experience:
                filters.append("experience_level = ?")
                params.append(experience)
            where_clause = " AND ".join(filters)

            total = int(
                self.connection.execute(
                    f"SELECT COUNT(1) AS c FROM jobs WHERE {where_clause}",
                    tuple(params),
                ).fetchone()["c"]
            )
            cursor = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs
                WHERE {where_clause}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, (page - 1) * limit),
            )
            return [self._to_job(row) for row in cursor.fetchall()], total

    def list_active_jobs(self) -> list[Job]:
        with self._lock:
            cursor = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs
                WHERE status = 'active'
                ORDER BY created_at DESC, id DESC
                """
            )
            return [self._to_job(row) for row in cursor.fetchall()]

    # Applications

    def create_application(
        self,
        user_id: int,
        job_id: int,
        *,
        status: str,
        notes: str | None,
    ) -> bool:
        with self._lock:
            existing = self.connection.execute(
                "SELECT id FROM job_applications WHERE user_id = ? AND job_id = ?",
                (user_id, job_id),
            ).fetchone()
            if existing is not None:
                return False
            self.connection.execute(
                """
                INSERT INTO job_applications (user_id, job_id, status, notes, applied_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, job_id, status, notes, now_utc_iso()),
            )
            self.connection.commit()
            return True

    def list_applications(
        self,
        user_id: int,
        *,
        status: str | None = None,
        active_jobs_only: bool = False,
    ) -> list[Application]:
        with self._lock:
            query = """
                SELECT
                    ja.id AS id,
                    ja.job_id AS job_id,
                    ja.status AS status,
                    ja.applied_at AS applied_at,
                    ja.notes AS notes,
                    j.title AS title,
                    j.company AS company,
                    j.location AS location,
                    j.salary_range AS salary_range
                FROM job_applications ja
                JOIN jobs j ON ja.job_id = j.id
                WHERE ja.user_id = ?
            """
            params: list[Any] = [user_id]
            if status:
                query += " AND ja.status = ?"
                params.append(status)
            if active_jobs_only:
                query += " AND j.status = 'active'"
            query += " ORDER BY ja.applied_at DESC, ja.id DESC"
            cursor = self.connection.execute(query, tuple(params))
            return [Application(**dict(row)) for row in cursor.fetchall()]

    def admin_stats(self) -> AdminStats:
        with self._lock:
            def count(query: str) -> int:
                return int(self.connection.execute(query).fetchone()["c"])

            recent_rows = self.connection.execute(
                """
                SELECT
                    ja.id AS id,
                    ja.status AS status,
                    ja.applied_at AS applied_at,
                    u.name AS user_name,
                    j.title AS job_title
                FROM job_applications ja
                JOIN users u ON ja.user_id = u.id
                JOIN jobs j ON ja.job_id = j.id
                ORDER BY ja.applied_at DESC, ja.id DESC
                LIMIT 5
                """
            ).fetchall()
            return AdminStats(
                total_users=count("SELECT COUNT(1) AS c FROM users"),
                total_jobs=count("SELECT COUNT(1) AS c FROM jobs WHERE status = 'active'"),
                total_applications=count("SELECT COUNT(1) AS c FROM job_applications"),
                total_messages=count(
                    "SELECT COUNT(1) AS c FROM messages WHERE sender_type = 'admin'"
                ),
                recent_applications=[RecentApplication(**dict(row)) for row in recent_rows],
            )

    # Messages

    def create_message(self, sender_id: int, payload: MessageSendRequest) -> Message:
        with self._lock:
            cursor = self.connection.execute(
                """
                INSERT INTO messages (
                    sender_id,
                    sender_type,
                    recipient_id,
                    recipient_type,
                    subject,
                    content,
                    message_type,
                    target_skills_json,
                    created_at
                )
                VALUES (?, 'admin', ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sender_id,
                    payload.recipient_id if payload.recipient_type == "user" else None,
                    payload.recipient_type,
                    payload.subject,
                    payload.content,
                    payload.message_type,
                    json.dumps(payload.target_skills),
                    now_utc_iso(),
                ),
            )
            self.connection.commit()
            message_id = int(cursor.lastrowid)
            row = self.connection.execute(
                """
                SELECT m.*, a.name AS sender_name, 0 AS is_read
                FROM messages m
                LEFT JOIN admins a ON m.sender_id = a.id
                WHERE m.id = ?
                """,
                (message_id,),
            ).fetchone()
            return self._to_message(row)

    def list_inbox(self, user_id: int) -> list[Message]:
        """Direct messages to the user plus every announcement, newest first."""
        with self._lock:
            cursor = self.connection.execute(
                """
                SELECT
                    m.*,
                    a.name AS sender_name,
                    CASE WHEN r.message_id IS NULL THEN 0 ELSE 1 END AS is_read
                FROM messages m
                LEFT JOIN admins a ON m.sender_id = a.id AND m.sender_type = 'admin'
                LEFT JOIN message_reads r ON r.message_id = m.id AND r.user_id = ?
                WHERE (m.recipient_type = 'user' AND m.recipient_id = ?)
                   OR m.recipient_type = 'all_users'
                ORDER BY m.created_at DESC, m.id DESC
                """,
                (user_id, user_id),
            )
            return [self._to_message(row) for row in cursor.fetchall()]

    def mark_message_read(self, message_id: int, user_id: int) -> None:
        with self._lock:
            self.connection.execute(
                """
                INSERT OR IGNORE INTO message_reads (message_id, user_id, read_at)
                VALUES (?, ?, ?)
                """,
                (message_id, user_id, now_utc_iso()),
            )
            self.connection.commit()

    def list_sent_messages(self, admin_id: int) -> list[Message]:
        with self._lock:
            cursor = self.connection.execute(
                """
                SELECT m.*, a.name AS sender_name, 0 AS is_read
                FROM messages m
                LEFT JOIN admins a ON m.sender_id = a.id
                WHERE m.sender_id = ? AND m.sender_type = 'admin'
                ORDER BY m.created_at DESC, m.id DESC
                """,
                (admin_id,),
            )
            return [self._to_message(row) for row in cursor.fetchall()]

    # Resumes

    def replace_resume(
        self,
        user_id: int,
        *,
        filename: str,
        original_name: str,
        file_path: str,
        file_size: int,
        mime_type: str,
    ) -> tuple[StoredResumeFile, list[str]]:
        """Store a new resume record and return it with the paths it superseded."""
        with self._lock:
            old_paths = [
                row["file_path"]
                for row in self.connection.execute(
                    "SELECT file_path FROM resume_files WHERE user_id = ?",
                    (user_id,),
                ).fetchall()
            ]
            self.connection.execute("DELETE FROM resume_files WHERE user_id = ?", (user_id,))
            cursor = self.connection.execute(
                """
                INSERT INTO resume_files (
                    user_id,
                    filename,
                    original_name,
                    file_path,
                    file_size,
                    mime_type,
                    uploaded_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, filename, original_name, file_path, file_size, mime_type, now_utc_iso()),
            )
            self.connection.commit()
            stored = self.get_resume_file(int(cursor.lastrowid), user_id)
            if stored is None:
                raise KeyError(f"Unknown resume file: {cursor.lastrowid}")
            return stored, old_paths

    def get_latest_resume(self, user_id: int) -> StoredResumeFile | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT *
                FROM resume_files
                WHERE user_id = ?
                ORDER BY uploaded_at DESC, id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return StoredResumeFile(**dict(row))

    def get_resume_file(self, file_id: int, user_id: int) -> StoredResumeFile | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT * FROM resume_files WHERE id = ? AND user_id = ?",
                (file_id, user_id),
            ).fetchone()
            if row is None:
                return None
            return StoredResumeFile(**dict(row))

    def delete_resume_file(self, file_id: int, user_id: int) -> StoredResumeFile | None:
        with self._lock:
            stored = self.get_resume_file(file_id, user_id)
            if stored is None:
                return None
            self.connection.execute(
                "DELETE FROM resume_files WHERE id = ? AND user_id = ?",
                (file_id, user_id),
            )
            self.connection.commit()
            return stored

    # Email preferences

    def get_email_preferences(self, user_id: int) -> EmailPreferences:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT job_alerts, career_guidance, notifications, marketing
                FROM email_preferences
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return self.update_email_preferences(user_id, EmailPreferences())
            return EmailPreferences(**{key: bool(row[key]) for key in PREFERENCE_DEFAULTS})

    def update_email_preferences(
        self,
        user_id: int,
        preferences: EmailPreferences,
    ) -> EmailPreferences:
        with self._lock:
            self.connection.execute(
                """
                INSERT INTO email_preferences (
                    user_id,
                    job_alerts,
                    career_guidance,
                    notifications,
                    marketing,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    job_alerts = excluded.job_alerts,
                    career_guidance = excluded.career_guidance,
                    notifications = excluded.notifications,
                    marketing = excluded.marketing,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    int(preferences.job_alerts),
                    int(preferences.career_guidance),
                    int(preferences.notifications),
                    int(preferences.marketing),
                    now_utc_iso(),
                ),
            )
            self.connection.commit()
            return preferences

    def list_email_recipients(self, category: PreferenceCategory) -> list[UserAccount]:
        """Users who have not opted out of ``category``; missing rows use the defaults."""
        if category not in PREFERENCE_DEFAULTS:
            raise ValueError(f"Unknown preference category: {category}")
        with self._lock:
            cursor = self.connection.execute(
                f"""
                SELECT {", ".join(f"u.{column.strip()}" for column in USER_COLUMNS.split(","))}
                FROM users u
                LEFT JOIN email_preferences p ON p.user_id = u.id
                WHERE COALESCE(p.{category}, ?) = 1
                ORDER BY u.id
                """,
                (int(PREFERENCE_DEFAULTS[category]),),
            )
            return [self._to_user(row) for row in cursor.fetchall()]

    def _to_user(self, row: sqlite3.Row) -> UserAccount:
        payload = dict(row)
        payload["skills"] = json.loads(payload.pop("skills_json") or "[]")
        return UserAccount(**payload)

    def _to_job(self, row: sqlite3.Row) -> Job:
        payload = dict(row)
        payload["skills"] = json.loads(payload.pop("skills_json") or "[]")
        return Job(**payload)

    def _to_message(self, row: sqlite3.Row) -> Message:
        payload = dict(row)
        payload["target_skills"] = json.loads(payload.pop("target_skills_json") or "[]")
        payload["is_read"] = bool(payload.get("is_read"))
        payload.pop("sender_type", None)
        return Message(**payload)
