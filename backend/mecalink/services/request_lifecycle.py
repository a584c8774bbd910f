import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from uuid import uuid4

from pydantic import ValidationError

from mecalink.models import Account, RequestLocation, RequestStatusChange, ServiceRequest, VehicleInfo
from mecalink.services.authorization import ACTION_FOR_STATUS, AuthorizationGate
from mecalink.services.errors import ForbiddenError, InputValidationError, InvalidTransitionError, NotFoundError
from mecalink.services.notification_store import notification_store
from mecalink.services.provider_directory import ProviderDirectory, provider_directory

logger = logging.getLogger(__name__)

# No accepted -> cancelled: an accepted request is closed by its garage only.
ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    "pending": {"accepted", "rejected", "cancelled"},
    "accepted": {"completed"},
}

TERMINAL_STATUSES = {"rejected", "completed", "cancelled"}

TIMESTAMP_FIELDS = {
    "accepted": "accepted_at",
    "rejected": "rejected_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
}

URGENCY_LEVELS = {"low", "medium", "high"}

Notifier = Callable[[str, ServiceRequest, Iterable[str]], None]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RequestLifecycle:
    db_path: str
    directory: ProviderDirectory
    gate: Optional[AuthorizationGate] = None
    notifier: Optional[Notifier] = None

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        if self.gate is None:
            self.gate = AuthorizationGate(self.directory)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS service_requests (
                        id TEXT PRIMARY KEY,
                        client_id TEXT NOT NULL,
                        client_name TEXT NOT NULL DEFAULT '',
                        client_phone TEXT NOT NULL DEFAULT '',
                        client_email TEXT NOT NULL DEFAULT '',
                        provider_id TEXT NOT NULL,
                        provider_name TEXT NOT NULL DEFAULT '',
                        description TEXT NOT NULL,
                        latitude REAL NOT NULL,
                        longitude REAL NOT NULL,
                        address TEXT NOT NULL DEFAULT '',
                        vehicle_info_json TEXT,
                        urgency TEXT NOT NULL DEFAULT 'medium',
                        status TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        accepted_at TEXT,
                        rejected_at TEXT,
                        completed_at TEXT,
                        cancelled_at TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS request_status_history (
                        id TEXT PRIMARY KEY,
                        request_id TEXT NOT NULL,
                        actor_account_id TEXT NOT NULL,
                        from_status TEXT NOT NULL,
                        to_status TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                self._ensure_column(conn, "service_requests", "vehicle_info_json", "TEXT")
                self._ensure_column(conn, "service_requests", "urgency", "TEXT NOT NULL DEFAULT 'medium'")
                for column in ("client_name", "client_phone", "client_email"):
                    self._ensure_column(conn, "service_requests", column, "TEXT NOT NULL DEFAULT ''")
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_requests_client ON service_requests (client_id, created_at)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_requests_provider ON service_requests (provider_id, created_at)"
                )
                conn.commit()

    def _ensure_column(self, conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
        existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
        if column in existing:
            return
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def _row_to_request(self, row: sqlite3.Row) -> ServiceRequest:
        vehicle_raw = row["vehicle_info_json"]
        return ServiceRequest(
            id=row["id"],
            client_id=row["client_id"],
            client_name=row["client_name"],
            client_phone=row["client_phone"],
            client_email=row["client_email"],
            provider_id=row["provider_id"],
            provider_name=row["provider_name"],
            description=row["description"],
            location=RequestLocation(
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                address=row["address"],
            ),
            vehicle_info=VehicleInfo(**json.loads(vehicle_raw)) if vehicle_raw else None,
            urgency=row["urgency"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            accepted_at=row["accepted_at"],
            rejected_at=row["rejected_at"],
            completed_at=row["completed_at"],
            cancelled_at=row["cancelled_at"],
        )

    def _insert_history(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        actor_account_id: str,
        from_status: str,
        to_status: str,
        created_at: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO request_status_history (id, request_id, actor_account_id, from_status, to_status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (f"rsh_{uuid4().hex[:10]}", request_id, actor_account_id, from_status, to_status, created_at),
        )

    def _load(self, request_id: str) -> ServiceRequest:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
        if not row:
            raise NotFoundError("Service request not found")
        return self._row_to_request(row)

    def _recipients_for(self, event: str, request: ServiceRequest) -> List[str]:
        if event in {"accepted", "rejected", "completed"}:
            return [request.client_id]
        owner_id = self.directory.find_by_id(request.provider_id).owner_account_id
        return [owner_id] if owner_id else []

    def _notify(self, event: str, request: ServiceRequest) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(event, request, self._recipients_for(event, request))
        except Exception:
            logger.exception("Notification for %s on request %s failed", event, request.id)

    def create_request(
        self,
        actor: Account,
        *,
        provider_id: str,
        description: str,
        location: Any,
        vehicle_info: Any = None,
        urgency: str = "medium",
    ) -> ServiceRequest:
        assert self.gate is not None
        self.gate.authorize(actor, "create").raise_if_denied()

        cleaned_description = (description or "").strip()
        if not cleaned_description:
            raise InputValidationError("description: is required")
        if urgency not in URGENCY_LEVELS:
            raise InputValidationError("urgency: must be one of low, medium, high")
        try:
            request_location = (
                location if isinstance(location, RequestLocation) else RequestLocation.model_validate(location)
            )
            vehicle = (
                vehicle_info
                if vehicle_info is None or isinstance(vehicle_info, VehicleInfo)
                else VehicleInfo.model_validate(vehicle_info)
            )
        except ValidationError as exc:
            error = exc.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "location"
            raise InputValidationError(f"{field}: {error['msg']}") from exc
        if not request_location.address.strip():
            raise InputValidationError("location.address: is required")

        provider = self.directory.find_by_id(provider_id)

        now = _utcnow()
        request_id = f"sr_{uuid4().hex[:10]}"
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO service_requests (
                        id, client_id, client_name, client_phone, client_email, provider_id, provider_name, description,
                        latitude, longitude, address, vehicle_info_json, urgency, status, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        request_id,
                        actor.id,
                        actor.name,
                        actor.phone,
                        actor.email,
                        provider.id,
                        provider.name,
                        cleaned_description,
                        request_location.latitude,
                        request_location.longitude,
                        request_location.address.strip(),
                        json.dumps(vehicle.model_dump()) if vehicle else None,
                        urgency,
                        "pending",
                        now,
                        now,
                    ),
                )
                self._insert_history(conn, request_id, actor.id, "none", "pending", now)
                conn.commit()
                row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()

        created = self._row_to_request(row)
        logger.info("Request %s created by %s for provider %s", created.id, actor.id, provider.id)
        self._notify("created", created)
        return created

    def transition(self, request_id: str, actor: Account, target_status: str) -> ServiceRequest:
        action = ACTION_FOR_STATUS.get(target_status)
        if action is None:
            raise InputValidationError(f"status: unsupported target status {target_status}")

        request = self._load(request_id)
        assert self.gate is not None
        self.gate.authorize(actor, action, request).raise_if_denied()

        current_status = request.status
        if target_status not in ALLOWED_TRANSITIONS.get(current_status, set()):
            raise InvalidTransitionError(current_status, target_status)

        timestamp_field = TIMESTAMP_FIELDS[target_status]
        now = _utcnow()
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE service_requests SET status = ?, {timestamp_field} = ?, updated_at = ? "
                    "WHERE id = ? AND status = ?",
                    (target_status, now, now, request_id, current_status),
                )
                if cursor.rowcount == 0:
                    # Lost a race: someone else moved the request first.
                    conn.rollback()
                    latest = conn.execute("SELECT status FROM service_requests WHERE id = ?", (request_id,)).fetchone()
                    raise InvalidTransitionError(str(latest["status"]) if latest else current_status, target_status)
                self._insert_history(conn, request_id, actor.id, current_status, target_status, now)
                conn.commit()
                row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()

        updated = self._row_to_request(row)
        logger.info("Request %s moved %s -> %s by %s", request_id, current_status, target_status, actor.id)
        self._notify(target_status, updated)
        return updated

    def get_request(self, request_id: str, actor: Account) -> ServiceRequest:
        request = self._load(request_id)
        assert self.gate is not None
        self.gate.authorize(actor, "view", request).raise_if_denied()
        return request

    def list_for_client(self, actor: Account) -> List[ServiceRequest]:
        if actor.role != "client":
            raise ForbiddenError("only client accounts have client requests")
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM service_requests WHERE client_id = ? ORDER BY created_at DESC",
                    (actor.id,),
                ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def list_for_provider(self, actor: Account) -> List[ServiceRequest]:
        if actor.role != "provider":
            raise ForbiddenError("only provider accounts have incoming requests")
        provider = self.directory.find_by_owner(actor.id)
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM service_requests WHERE provider_id = ? ORDER BY created_at DESC",
                    (provider.id,),
                ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def history(self, request_id: str, actor: Account) -> List[RequestStatusChange]:
        self.get_request(request_id, actor)
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM request_status_history
                    WHERE request_id = ?
                    ORDER BY created_at, rowid
                    """,
                    (request_id,),
                ).fetchall()
        return [
            RequestStatusChange(
                id=row["id"],
                request_id=row["request_id"],
                actor_account_id=row["actor_account_id"],
                from_status=row["from_status"],
                to_status=row["to_status"],
                created_at=row["created_at"],
            )
            for row in rows
        ]


default_db = str(Path(__file__).resolve().parents[2] / "data" / "mecalink.sqlite3")
request_lifecycle = RequestLifecycle(
    db_path=os.getenv("MECALINK_DB_PATH", default_db),
    directory=provider_directory,
    notifier=notification_store.notify_request_event,
)
