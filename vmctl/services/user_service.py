"""
User Registry Service

JSON-file-backed registry of users, quotas and cached usage. The whole
document is rewritten on every mutation.
"""

import json
import logging
import os
import re
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from vmctl.constants import DEFAULT_ROLE, DEFAULT_USERS_FILE
from vmctl.exceptions import (
    RegistryError,
    UserExistsError,
    UserNotFoundError,
    ValidationError,
)
from vmctl.models.users import Quota, Usage, UserRecord
from vmctl.services.locks import FileLock

logger = logging.getLogger(__name__)

# No hyphens: instance names are "<owner>-<hostname>" and split on the first one
USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,31}$")

UPDATABLE_FIELDS = {"role", "email", "full_name", "active", "quotas"}


class UserRegistry:
    """
    In-memory mirror of the users document.

    Reads use the copy loaded at construction. Every mutation takes an
    flock on ``<users_file>.lock``, reloads the document, applies the change
    and rewrites the file through a temporary file and an atomic rename, so
    concurrent vmctl processes never overwrite each other's changes.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path or DEFAULT_USERS_FILE).expanduser()
        self._clock = clock
        self._lock = threading.RLock()
        self._in_transaction = False
        self._users: Dict[str, UserRecord] = {}
        self.load()

    def load(self) -> None:
        """
        (Re)read the document.

        A missing file is an empty registry.

        Raises:
            RegistryError: If the file exists but cannot be parsed
        """
        with self._lock:
            if not self.path.exists():
                self._users = {}
                return
            try:
                with open(self.path, "r") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise RegistryError(f"Failed to read user registry {self.path}", context=str(e))
            if not isinstance(data, list):
                raise RegistryError(f"User registry {self.path} must contain a JSON list")
            try:
                users = [UserRecord.from_dict(entry) for entry in data]
            except (KeyError, TypeError, ValueError) as e:
                raise RegistryError(f"Malformed entry in user registry {self.path}", context=str(e))
            self._users = {user.username: user for user in users}
            logger.debug("Loaded %d users from %s", len(self._users), self.path)

    def save(self) -> None:
        """
        Rewrite the whole document.

        Raises:
            RegistryError: If the file cannot be written
        """
        with self._lock:
            document = [user.to_dict() for user in self._users.values()]
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".users-", suffix=".json")
                try:
                    with os.fdopen(fd, "w") as f:
                        json.dump(document, f, indent=2)
                        f.write("\n")
                    os.replace(tmp_path, self.path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except OSError as e:
                raise RegistryError(f"Failed to write user registry {self.path}", context=str(e))

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Hold the registry lock and work on a freshly loaded document.

        Raises:
            RegistryError: If the lock cannot be taken or the document cannot be read
        """
        with self._lock:
            if self._in_transaction:
                yield
                return
            try:
                file_lock = FileLock(self.lock_path)
                file_lock.acquire()
            except OSError as e:
                raise RegistryError(f"Failed to lock user registry {self.path}", context=str(e))
            self._in_transaction = True
            try:
                self.load()
                yield
            finally:
                self._in_transaction = False
                file_lock.release()

    def list_users(self) -> list[UserRecord]:
        with self._lock:
            return list(self._users.values())

    def usernames(self) -> list[str]:
        with self._lock:
            return list(self._users)

    def exists(self, username: str) -> bool:
        with self._lock:
            return username in self._users

    def get(self, username: str) -> UserRecord:
        """
        Raises:
            UserNotFoundError: If the username is not registered
        """
        with self._lock:
            user = self._users.get(username)
            if user is None:
                raise UserNotFoundError(username, available_users=list(self._users))
            return user

    def create(
        self,
        username: str,
        role: str = DEFAULT_ROLE,
        email: str = "",
        full_name: str = "",
        quotas: Optional[Dict[str, Any]] = None,
    ) -> UserRecord:
        """
        Register a new user with default quotas, merged with any given.

        Raises:
            ValidationError: If the username is not a valid registry name
            UserExistsError: If the username is taken
        """
        if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
            raise ValidationError(
                f"Invalid username: {username!r}",
                context="Use lowercase letters, digits and underscore (max 32 chars, no hyphens)",
            )
        quota = Quota()
        if quotas:
            try:
                quota = quota.updated(quotas)
            except ValueError as e:
                raise ValidationError(str(e))

        with self.transaction():
            if username in self._users:
                raise UserExistsError(username)
            user = UserRecord(
                id=max((u.id for u in self._users.values()), default=0) + 1,
                username=username,
                role=role,
                email=email,
                full_name=full_name,
                quotas=quota,
                usage=Usage(),
                created=int(self._clock() * 1000),
                active=True,
            )
            self._users[username] = user
            self._commit(lambda: self._users.pop(username, None))
            logger.info("Created user %s", username)
            return user

    def update(self, username: str, changes: Dict[str, Any]) -> UserRecord:
        """
        Apply changes to role, email, full_name, active and quotas (merged).

        Raises:
            UserNotFoundError: If the username is not registered
            ValidationError: If a field cannot be updated
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        with self.transaction():
            user = self.get(username)
            previous = UserRecord.from_dict(user.to_dict())
            try:
                if "quotas" in changes and changes["quotas"]:
                    user.quotas = user.quotas.updated(changes["quotas"])
            except ValueError as e:
                raise ValidationError(str(e))
            if "role" in changes and changes["role"] is not None:
                user.role = str(changes["role"])
            if "email" in changes and changes["email"] is not None:
                user.email = str(changes["email"])
            if "full_name" in changes and changes["full_name"] is not None:
                user.full_name = str(changes["full_name"])
            if "active" in changes and changes["active"] is not None:
                user.active = bool(changes["active"])
            self._commit(lambda: self._users.__setitem__(username, previous))
            logger.info("Updated user %s", username)
            return user

    def update_quotas(self, username: str, quotas: Dict[str, Any]) -> UserRecord:
        return self.update(username, {"quotas": quotas})

    def delete(self, username: str) -> None:
        """
        Raises:
            UserNotFoundError: If the username is not registered
        """
        with self.transaction():
            user = self.get(username)
            del self._users[username]
            self._commit(lambda: self._users.__setitem__(username, user))
            logger.info("Deleted user %s", username)

    def record_usage(self, username: str, usage: Usage) -> UserRecord:
        """Replace the cached usage snapshot and persist it."""
        with self.transaction():
            user = self.get(username)
            previous = user.usage
            user.usage = usage
            self._commit(lambda: setattr(user, "usage", previous))
            return user

    def _commit(self, undo: Callable[[], Any]) -> None:
        """Persist; restore the in-memory state if the write fails."""
        try:
            self.save()
        except RegistryError:
            undo()
            raise

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __repr__(self) -> str:
        return f"UserRegistry(path={self.path}, users={len(self)})"
