import hashlib
import hmac
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Optional
from uuid import uuid4

from mecalink.data import DEMO_PASSWORD, SEED_ACCOUNTS
from mecalink.models import Account
from mecalink.services.errors import InputValidationError, NotFoundError

_PBKDF2_ROUNDS = 120_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or uuid4().hex
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ROUNDS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, expected = stored.partition("$")
    if not salt or not expected:
        return False
    candidate = hash_password(password, salt=salt).partition("$")[2]
    return hmac.compare_digest(candidate, expected)


class AccountStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_db()
        self._seed_if_needed()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS accounts (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL UNIQUE,
                        phone TEXT NOT NULL DEFAULT '',
                        role TEXT NOT NULL,
                        password_hash TEXT NOT NULL,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _seed_if_needed(self) -> None:
        with self._lock:
            with self._connect() as conn:
                existing = {row["id"] for row in conn.execute("SELECT id FROM accounts").fetchall()}
                for account in SEED_ACCOUNTS:
                    if account["id"] in existing:
                        continue
                    conn.execute(
                        """
                        INSERT OR IGNORE INTO accounts (id, name, email, phone, role, password_hash, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            account["id"],
                            account["name"],
                            account["email"],
                            account["phone"],
                            account["role"],
                            hash_password(DEMO_PASSWORD),
                            datetime.now(timezone.utc).isoformat(),
                        ),
                    )
                conn.commit()

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            role=row["role"],
        )

    def register(self, *, name: str, email: str, password: str, phone: str, role: str) -> Account:
        if role not in {"client", "provider"}:
            raise InputValidationError("role: must be client or provider")
        if not name.strip():
            raise InputValidationError("name: is required")
        normalized_email = email.strip().lower()
        if "@" not in normalized_email:
            raise InputValidationError("email: invalid address")
        if len(password) < 6:
            raise InputValidationError("password: must be at least 6 characters")

        account_id = f"acct_{uuid4().hex[:10]}"
        with self._lock:
            with self._connect() as conn:
                existing = conn.execute("SELECT id FROM accounts WHERE email = ?", (normalized_email,)).fetchone()
                if existing:
                    raise InputValidationError("email: already registered")
                conn.execute(
                    """
                    INSERT INTO accounts (id, name, email, phone, role, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account_id,
                        name.strip(),
                        normalized_email,
                        phone.strip(),
                        role,
                        hash_password(password),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                conn.commit()
                row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return self._row_to_account(row)

    def authenticate(self, email: str, password: str) -> Optional[Account]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM accounts WHERE email = ? AND is_active = 1",
                    (email.strip().lower(),),
                ).fetchone()
        if not row or not verify_password(password, row["password_hash"]):
            return None
        return self._row_to_account(row)

    def get(self, account_id: str) -> Account:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM accounts WHERE id = ? AND is_active = 1",
                    (account_id,),
                ).fetchone()
        if not row:
            raise NotFoundError("Account not found")
        return self._row_to_account(row)

    def delete(self, account_id: str) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
                conn.commit()


default_db = str(Path(__file__).resolve().parents[2] / "data" / "mecalink.sqlite3")
account_store = AccountStore(db_path=os.getenv("MECALINK_DB_PATH", default_db))
