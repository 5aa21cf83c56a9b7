"""Credential store backed by a JSON file with readers-writer locking.

Every mutation rewrites the whole mapping through a temp file and
``os.replace`` so a crash mid-write leaves either the old or the new file on
disk, never a truncated one. A failed write is logged and the in-memory state
is kept as-is.

Records written by this module use bcrypt. Records carrying a base64 salt are
verified with the older salted-SHA-256 scheme so stores written by earlier
bridge releases keep working; the next password change upgrades them.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import bcrypt

from metricsbridge.core.rwlock import ReadWriteLock

ORIGINAL_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"
DEFAULT_BCRYPT_ROUNDS = 12
# bcrypt only consumes the first 72 bytes and newer releases refuse longer input.
MAX_PASSWORD_BYTES = 72


class UserStoreError(Exception):
    """Base class for rejected user-store mutations."""
    code = "user_store_error"

    def __init__(self, message, username=""):
        super().__init__(message)
        self.message = message
        self.username = username


class OriginalAdminError(UserStoreError):
    """The original admin account cannot be deleted or demoted."""
    code = "original_admin_protected"


class LastAdminError(UserStoreError):
    """The operation would leave the store without any admin."""
    code = "last_admin"


@dataclass
class UserRecord:
    """One stored credential record (mutable, guarded by the store lock)."""
    username: str
    hashed_password: str
    salt: str
    is_admin: bool
    created_at: int
    last_modified: int

    def to_json(self):
        return {
            "username": self.username,
            "hashedPassword": self.hashed_password,
            "salt": self.salt,
            "isAdmin": self.is_admin,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_json(cls, key, data):
        created_at = int(data.get("createdAt") or 0)
        return cls(
            username=str(data.get("username") or key),
            hashed_password=str(data["hashedPassword"]),
            salt=str(data["salt"]),
            is_admin=bool(data.get("isAdmin", False)),
            created_at=created_at,
            last_modified=int(data.get("lastModified") or created_at),
        )

    def info(self):
        return UserInfo(self.username, self.is_admin, self.created_at, self.last_modified)


@dataclass(frozen=True)
class UserInfo:
    """Read-only projection of a user without hash or salt."""
    username: str
    is_admin: bool
    created_at: int
    last_modified: int

    def to_dict(self):
        return {
            "username": self.username,
            "isAdmin": self.is_admin,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
        }


def normalize_username(username):
    """Return the case-folded lookup key for a username."""
    if username is None:
        return ""
    return str(username).strip().lower()


def is_bcrypt_salt(salt):
    return str(salt or "").startswith("$2")


def password_fits(password):
    return len(str(password).encode("utf-8")) <= MAX_PASSWORD_BYTES


def generate_salt(rounds=DEFAULT_BCRYPT_ROUNDS):
    return bcrypt.gensalt(rounds=rounds).decode("ascii")


def hash_password(password, salt):
    """Hash ``password`` with ``salt`` using the scheme the salt belongs to."""
    password_bytes = str(password).encode("utf-8")
    if is_bcrypt_salt(salt):
        return bcrypt.hashpw(password_bytes, salt.encode("ascii")).decode("ascii")
    digest = hashlib.sha256()
    digest.update(base64.b64decode(salt))
    digest.update(password_bytes)
    return base64.b64encode(digest.digest()).decode("ascii")


def verify_password(password, salt, hashed_password):
    """Recompute the hash with the stored salt and compare in constant time."""
    if password is None:
        return False
    try:
        candidate = hash_password(password, salt)
    except (ValueError, binascii.Error):
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), str(hashed_password).encode("utf-8"))


def _noop_log(*_args, **_kwargs):
    return None


class UserStore:
    """Durable, concurrency-safe credential storage."""

    def __init__(self, path, *, bcrypt_rounds=DEFAULT_BCRYPT_ROUNDS, log_action=None, clock=time.time):
        self.path = Path(path)
        self.bcrypt_rounds = bcrypt_rounds
        self._log = log_action or _noop_log
        self._clock = clock
        self._lock = ReadWriteLock()
        self._users = {}
        self._load()

    def _now_ms(self):
        return int(self._clock() * 1000)

    # ----------------------------
    # Loading and persistence
    # ----------------------------
    def _load(self):
        """Load the store from disk, bootstrapping the default admin when needed."""
        with self._lock.write_lock():
            if not self.path.exists():
                self._bootstrap_default_admin_locked("store file missing")
                return
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(raw, dict):
                    raise ValueError("user store root must be an object")
            except (OSError, ValueError) as exc:
                self._log("user-store-load-failed", command=str(self.path), rejection_message=str(exc))
                self._quarantine_corrupt_file()
                self._bootstrap_default_admin_locked("store file unreadable")
                return

            for key, entry in raw.items():
                normalized = normalize_username(key)
                if not normalized or not isinstance(entry, dict):
                    continue
                try:
                    self._users[normalized] = UserRecord.from_json(normalized, entry)
                except (KeyError, TypeError, ValueError) as exc:
                    self._log("user-store-skip-record", command=normalized, rejection_message=str(exc))

            if not self._users:
                self._bootstrap_default_admin_locked("store file empty")
            elif self._admin_count_locked() == 0:
                self._restore_original_admin_locked()

    def _quarantine_corrupt_file(self):
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
            self._log("user-store-quarantine", command=str(target))
        except OSError as exc:
            self._log("user-store-quarantine-failed", command=str(self.path), rejection_message=str(exc))

    def _bootstrap_default_admin_locked(self, reason):
        salt = generate_salt(self.bcrypt_rounds)
        now = self._now_ms()
        self._users[ORIGINAL_ADMIN_USERNAME] = UserRecord(
            username=ORIGINAL_ADMIN_USERNAME,
            hashed_password=hash_password(DEFAULT_ADMIN_PASSWORD, salt),
            salt=salt,
            is_admin=True,
            created_at=now,
            last_modified=now,
        )
        self._save_locked()
        self._log(
            "default-admin-created",
            command=f"reason={reason} file={self.path}",
            rejection_message=(
                f"WARNING: default credentials {ORIGINAL_ADMIN_USERNAME}/{DEFAULT_ADMIN_PASSWORD} are active. "
                "Change the password immediately."
            ),
        )

    def _restore_original_admin_locked(self):
        record = self._users.get(ORIGINAL_ADMIN_USERNAME)
        if record is None:
            self._bootstrap_default_admin_locked("no admin in store")
            return
        record.is_admin = True
        record.last_modified = self._now_ms()
        self._save_locked()
        self._log("admin-restored", command=ORIGINAL_ADMIN_USERNAME, rejection_message="store had no admin")

    def _save_locked(self):
        """Serialize the whole mapping and swap it into place atomically."""
        payload = {key: record.to_json() for key, record in self._users.items()}
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
            return True
        except OSError as exc:
            self._log("user-store-save-failed", command=str(self.path), rejection_message=str(exc))
            return False

    def _admin_count_locked(self):
        return sum(1 for record in self._users.values() if record.is_admin)

    # ----------------------------
    # Queries
    # ----------------------------
    def authenticate(self, username, password):
        """Return whether ``password`` matches the stored credentials."""
        key = normalize_username(username)
        if not key or password is None:
            return False
        with self._lock.read_lock():
            record = self._users.get(key)
            if record is None:
                return False
            salt, hashed = record.salt, record.hashed_password
        # Hashing runs outside the lock so slow bcrypt rounds never block writers.
        return verify_password(password, salt, hashed)

    def get_user(self, username):
        key = normalize_username(username)
        with self._lock.read_lock():
            record = self._users.get(key)
            return record.info() if record is not None else None

    def is_admin(self, username):
        user = self.get_user(username)
        return user is not None and user.is_admin

    def list_users(self):
        with self._lock.read_lock():
            return {key: record.info() for key, record in self._users.items()}

    def admin_count(self):
        with self._lock.read_lock():
            return self._admin_count_locked()

    def is_original_admin(self, username):
        return normalize_username(username) == ORIGINAL_ADMIN_USERNAME

    # ----------------------------
    # Mutations
    # ----------------------------
    def create_user(self, username, password, is_admin=False):
        """Create a user; returns False on invalid input or duplicate name."""
        key = normalize_username(username)
        if not key or password is None or not str(password).strip():
            return False
        if not password_fits(password):
            return False
        with self._lock.read_lock():
            if key in self._users:
                return False

        salt = generate_salt(self.bcrypt_rounds)
        hashed = hash_password(password, salt)
        now = self._now_ms()
        with self._lock.write_lock():
            if key in self._users:
                return False
            self._users[key] = UserRecord(key, hashed, salt, bool(is_admin), now, now)
            self._save_locked()
        return True

    def update_password(self, username, old_password, new_password):
        """Change a password after verifying the old one; always re-salts."""
        key = normalize_username(username)
        if not key or old_password is None or new_password is None or not str(new_password).strip():
            return False
        if not password_fits(new_password):
            return False
        with self._lock.read_lock():
            record = self._users.get(key)
            if record is None:
                return False
            old_salt, old_hash = record.salt, record.hashed_password
        if not verify_password(old_password, old_salt, old_hash):
            return False
        return self._replace_hash(key, new_password, expected_hash=old_hash)

    def reset_password(self, username, new_password):
        """Set a new password without the old one (admin reset)."""
        key = normalize_username(username)
        if not key or new_password is None or not str(new_password).strip():
            return False
        if not password_fits(new_password):
            return False
        return self._replace_hash(key, new_password)

    def _replace_hash(self, key, new_password, expected_hash=None):
        salt = generate_salt(self.bcrypt_rounds)
        hashed = hash_password(new_password, salt)
        with self._lock.write_lock():
            record = self._users.get(key)
            if record is None:
                return False
            # A concurrent change since verification invalidates the old password check.
            if expected_hash is not None and record.hashed_password != expected_hash:
                return False
            record.salt = salt
            record.hashed_password = hashed
            record.last_modified = self._now_ms()
            self._save_locked()
        return True

    def delete_user(self, username):
        """Remove a user; returns False when absent.

        Raises ``OriginalAdminError`` or ``LastAdminError`` before mutating
        anything when the deletion would break an admin invariant.
        """
        key = normalize_username(username)
        if self.is_original_admin(key):
            raise OriginalAdminError("The original admin account cannot be deleted.", key)
        with self._lock.write_lock():
            record = self._users.get(key)
            if record is None:
                return False
            if record.is_admin and self._admin_count_locked() <= 1:
                raise LastAdminError("Cannot delete the last admin account.", key)
            del self._users[key]
            self._save_locked()
        return True

    def set_admin_status(self, username, is_admin):
        """Grant or revoke admin; returns False when the user is absent."""
        key = normalize_username(username)
        is_admin = bool(is_admin)
        if not is_admin and self.is_original_admin(key):
            raise OriginalAdminError("The original admin account cannot be demoted.", key)
        with self._lock.write_lock():
            record = self._users.get(key)
            if record is None:
                return False
            if not is_admin and record.is_admin and self._admin_count_locked() <= 1:
                raise LastAdminError("Cannot remove admin status from the last admin.", key)
            record.is_admin = is_admin
            record.last_modified = self._now_ms()
            self._save_locked()
        return True
