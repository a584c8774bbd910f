import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from mecalink.data import SEED_GARAGES
from mecalink.models import MAX_PROVIDER_SKILLS, Account, Position, Provider
from mecalink.services import geo_matcher
from mecalink.services.errors import ForbiddenError, InputValidationError, NotFoundError

logger = logging.getLogger(__name__)


def _parse_radius(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        return 10.0
    return value if value > 0 else 10.0


DEFAULT_RADIUS_KM = _parse_radius(os.getenv("DEFAULT_RADIUS_KM", "10"))

EDITABLE_FIELDS = {
    "name",
    "email",
    "phone",
    "address",
    "position",
    "services",
    "skills",
    "description",
    "opening_hours",
    "is_open",
}


def normalize_services(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        cleaned = str(value).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def normalize_skills(values: Iterable[str]) -> List[str]:
    skills = [str(value).strip() for value in values if value is not None and str(value).strip()]
    if len(skills) > MAX_PROVIDER_SKILLS:
        raise InputValidationError(f"skills: at most {MAX_PROVIDER_SKILLS} entries allowed")
    return skills


def _coerce_position(value: Any) -> Position:
    if isinstance(value, Position):
        return value
    try:
        return Position.model_validate(value)
    except ValidationError as exc:
        raise InputValidationError(f"position: {exc.errors()[0]['msg']}") from exc


@dataclass
class ProviderDirectory:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        self._seed_if_needed()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS providers (
                        id TEXT PRIMARY KEY,
                        owner_account_id TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL DEFAULT '',
                        phone TEXT NOT NULL DEFAULT '',
                        address TEXT NOT NULL DEFAULT '',
                        latitude REAL NOT NULL,
                        longitude REAL NOT NULL,
                        services_json TEXT NOT NULL DEFAULT '[]',
                        skills_json TEXT NOT NULL DEFAULT '[]',
                        description TEXT NOT NULL DEFAULT '',
                        opening_hours TEXT NOT NULL DEFAULT '',
                        is_open INTEGER NOT NULL DEFAULT 1,
                        rating REAL NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _seed_if_needed(self) -> None:
        with self._lock:
            with self._connect() as conn:
                for garage in SEED_GARAGES:
                    conn.execute(
                        """
                        INSERT OR IGNORE INTO providers (
                            id, owner_account_id, name, email, phone, address, latitude, longitude,
                            services_json, skills_json, description, opening_hours, is_open, rating, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            garage["id"],
                            garage["owner_account_id"],
                            garage["name"],
                            garage["email"],
                            garage["phone"],
                            garage["address"],
                            garage["latitude"],
                            garage["longitude"],
                            json.dumps(garage["services"]),
                            json.dumps(garage["skills"]),
                            garage["description"],
                            garage["opening_hours"],
                            1,
                            garage["rating"],
                            datetime.now(timezone.utc).isoformat(),
                        ),
                    )
                conn.commit()

    def _row_to_provider(self, row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            address=row["address"],
            position=Position(latitude=float(row["latitude"]), longitude=float(row["longitude"])),
            services=json.loads(row["services_json"] or "[]"),
            skills=json.loads(row["skills_json"] or "[]"),
            description=row["description"],
            opening_hours=row["opening_hours"],
            is_open=bool(row["is_open"]),
            rating=float(row["rating"]),
            owner_account_id=row["owner_account_id"],
        )

    def _usable_provider(self, row: sqlite3.Row, missing_message: str) -> Provider:
        try:
            return self._row_to_provider(row)
        except ValidationError as exc:
            logger.warning("Provider %s has unusable stored data: %s", row["id"], exc.errors()[0]["msg"])
            raise NotFoundError(missing_message) from exc

    def find_all(self) -> List[Provider]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM providers ORDER BY created_at, id").fetchall()
        providers: List[Provider] = []
        for row in rows:
            try:
                providers.append(self._row_to_provider(row))
            except ValidationError:
                logger.warning("Skipping provider %s with unusable stored data", row["id"])
        return providers

    def find_by_id(self, provider_id: str) -> Provider:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        if not row:
            raise NotFoundError("Provider not found")
        return self._usable_provider(row, "Provider not found")

    def find_by_owner(self, account_id: str) -> Provider:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM providers WHERE owner_account_id = ?", (account_id,)).fetchone()
        if not row:
            raise NotFoundError("Provider not found for this account")
        return self._usable_provider(row, "Provider not found for this account")

    def nearby(self, position: Position, radius_km: Optional[float] = None) -> List[Provider]:
        radius = DEFAULT_RADIUS_KM if radius_km is None else radius_km
        ranked = geo_matcher.nearby(position, self.find_all(), radius)
        return [provider.model_copy(update={"distance_km": km}) for provider, km in ranked]

    def add_provider(
        self,
        *,
        owner_account_id: str,
        name: str,
        address: str,
        position: Any,
        email: str = "",
        phone: str = "",
        services: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        description: str = "",
        opening_hours: str = "",
    ) -> Provider:
        if not name.strip():
            raise InputValidationError("name: is required")
        if not address.strip():
            raise InputValidationError("address: is required")
        location = _coerce_position(position)
        service_tags = normalize_services(services or [])
        skill_list = normalize_skills(skills or [])
        provider_id = f"gar_{uuid4().hex[:8]}"

        with self._lock:
            with self._connect() as conn:
                existing = conn.execute(
                    "SELECT id FROM providers WHERE owner_account_id = ?",
                    (owner_account_id,),
                ).fetchone()
                if existing:
                    raise InputValidationError("owner_account_id: account already has a garage")
                conn.execute(
                    """
                    INSERT INTO providers (
                        id, owner_account_id, name, email, phone, address, latitude, longitude,
                        services_json, skills_json, description, opening_hours, is_open, rating, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        provider_id,
                        owner_account_id,
                        name.strip(),
                        email.strip(),
                        phone.strip(),
                        address.strip(),
                        location.latitude,
                        location.longitude,
                        json.dumps(service_tags),
                        json.dumps(skill_list),
                        description.strip(),
                        opening_hours.strip(),
                        1,
                        0.0,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                conn.commit()
                row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        logger.info("Registered provider %s for account %s", provider_id, owner_account_id)
        return self._row_to_provider(row)

    def update(self, provider_id: str, actor: Account, fields: Dict[str, Any]) -> Provider:
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise InputValidationError(f"{unknown[0]}: not an editable field")

        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
                if not row:
                    raise NotFoundError("Provider not found")
                if actor.role != "provider" or row["owner_account_id"] != actor.id:
                    raise ForbiddenError("not the owning provider account")

                current = self._usable_provider(row, "Provider not found")
                updates: Dict[str, Any] = {}
                for key, value in fields.items():
                    if key in {"name", "email", "phone", "address", "description", "opening_hours"}:
                        if value is None:
                            raise InputValidationError(f"{key}: cannot be null")
                        cleaned = str(value).strip()
                        if key in {"name", "address"} and not cleaned:
                            raise InputValidationError(f"{key}: cannot be empty")
                        updates[key] = cleaned
                    elif key == "position":
                        updates["position"] = _coerce_position(value)
                    elif key == "services":
                        updates["services"] = normalize_services(value or [])
                    elif key == "skills":
                        updates["skills"] = normalize_skills(value or [])
                    elif key == "is_open":
                        if not isinstance(value, bool):
                            raise InputValidationError("is_open: must be a boolean")
                        updates["is_open"] = value
                if not updates:
                    return current

                merged = current.model_copy(update=updates)
                conn.execute(
                    """
                    UPDATE providers
                    SET name = ?, email = ?, phone = ?, address = ?, latitude = ?, longitude = ?,
                        services_json = ?, skills_json = ?, description = ?, opening_hours = ?, is_open = ?
                    WHERE id = ?
                    """,
                    (
                        merged.name,
                        merged.email,
                        merged.phone,
                        merged.address,
                        merged.position.latitude,
                        merged.position.longitude,
                        json.dumps(merged.services),
                        json.dumps(merged.skills),
                        merged.description,
                        merged.opening_hours,
                        1 if merged.is_open else 0,
                        provider_id,
                    ),
                )
                conn.commit()
                updated_row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        logger.info("Provider %s updated fields %s", provider_id, sorted(updates))
        return self._row_to_provider(updated_row)


default_db = str(Path(__file__).resolve().parents[2] / "data" / "mecalink.sqlite3")
provider_directory = ProviderDirectory(db_path=os.getenv("MECALINK_DB_PATH", default_db))
