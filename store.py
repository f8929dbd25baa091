# store.py
"""
JSON-file stores: groups keyed by id (with join-code lookup) and per-member
calendar credentials.

update_group() is the only way callers should mutate a stored group; it holds
a per-group lock across read, mutate and write.
"""
import json
import logging
import os
import random
import string
import threading
import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

import pendulum

import settings
from models import Calendar, Event, Group, Member

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6

_creds_lock = threading.Lock()


class GroupNotFoundError(LookupError):
    pass


def _utcnow() -> datetime:
    return pendulum.now("UTC")


def generate_group_code() -> str:
    return "".join(random.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        raw = f.read()
    return json.loads(raw or "{}")


def _write_json(path: Path, data: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)


class GroupStore:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.GROUP_STORE)
        self._io_lock = threading.Lock()
        self._create_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._group_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    def _group_lock(self, group_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._group_locks[group_id]

    # ---------- plain reads/writes ----------
    def all_groups(self) -> Dict[str, Group]:
        with self._io_lock:
            data = _read_json(self.path)
        return {gid: Group.model_validate(item) for gid, item in data.items()}

    def get_group(self, group_id: str) -> Optional[Group]:
        with self._io_lock:
            item = _read_json(self.path).get(group_id)
        return Group.model_validate(item) if item else None

    def get_group_by_code(self, code: str) -> Optional[Group]:
        code = (code or "").strip().upper()
        for group in self.all_groups().values():
            if group.code == code:
                return group
        return None

    def save_group(self, group: Group):
        with self._io_lock:
            data = _read_json(self.path)
            data[group.id] = group.model_dump(mode="json", by_alias=True)
            _write_json(self.path, data)

    def delete_group(self, group_id: str) -> bool:
        # members live inside the group record, so they go with it
        with self._group_lock(group_id), self._io_lock:
            data = _read_json(self.path)
            if data.pop(group_id, None) is None:
                return False
            _write_json(self.path, data)
        logger.info("store: deleted group %s", group_id)
        return True

    # ---------- atomic read-modify-write ----------
    def update_group(self, group_id: str, mutate: Callable[[Group], object]):
        """Apply ``mutate`` to the stored group and persist it; returns (group, mutate's result)."""
        with self._group_lock(group_id):
            group = self.get_group(group_id)
            if group is None:
                raise GroupNotFoundError(group_id)
            result = mutate(group)
            group.updated_at = _utcnow()
            self.save_group(group)
        return group, result

    # ---------- group/member operations ----------
    def create_group(self, name: Optional[str] = None, creator_name: Optional[str] = None) -> Tuple[Group, Optional[Member]]:
        now = _utcnow()
        creator = None
        if creator_name and creator_name.strip():
            creator = new_member(creator_name.strip())

        # code lookup and insert must not interleave with another create
        with self._create_lock:
            code = generate_group_code()
            while self.get_group_by_code(code):
                code = generate_group_code()
            group = Group(id=str(uuid.uuid4()), code=code, name=name or "New Group",
                          members=[creator] if creator else [], created_at=now, updated_at=now)
            self.save_group(group)
        logger.info("store: created group %s code=%s", group.id, group.code)
        return group, creator

    def join_group(self, code: str, member_name: str) -> Tuple[Group, Member]:
        found = self.get_group_by_code(code)
        if found is None:
            raise GroupNotFoundError(code)

        def _join(group: Group) -> Member:
            for m in group.members:
                if m.name.lower() == member_name.strip().lower():
                    return m
            member = new_member(member_name.strip())
            group.members.append(member)
            return member

        return self.update_group(found.id, _join)

    def set_member_included(self, group_id: str, member_id: str, included: bool) -> Member:
        def _toggle(group: Group) -> Member:
            member = group.member(member_id)
            if member is None:
                raise GroupNotFoundError(f"{group_id}/{member_id}")
            member.is_included = included
            return member

        return self.update_group(group_id, _toggle)[1]

    def add_member_events(self, group_id: str, member_id: str, events: Iterable[Event]) -> Member:
        events = list(events)

        def _append(group: Group) -> Member:
            member = group.member(member_id)
            if member is None:
                raise GroupNotFoundError(f"{group_id}/{member_id}")
            member.calendar.events.extend(events)
            return member

        return self.update_group(group_id, _append)[1]


def new_member(name: str) -> Member:
    member_id = str(uuid.uuid4())
    return Member(id=member_id, name=name, is_included=True,
                  calendar=Calendar(user_id=member_id, user_name=name, events=[]))


# ---------- member calendar credentials ----------
def save_user_creds(user_id: str, creds_dict: dict, path: Optional[str] = None):
    store = Path(path or settings.TOKEN_STORE)
    with _creds_lock:
        data = _read_json(store)
        data[user_id] = creds_dict
        _write_json(store, data)


def load_user_creds(user_id: str, path: Optional[str] = None) -> Optional[dict]:
    store = Path(path or settings.TOKEN_STORE)
    try:
        data = _read_json(store)
    except json.JSONDecodeError:
        logger.warning("store: unreadable token store %s", store)
        return None
    return data.get(user_id)
