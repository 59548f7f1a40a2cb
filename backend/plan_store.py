"""Key-value persistence for plan state: one JSON blob per plan key."""

from __future__ import annotations

import json
import os
import tempfile

STATE_VERSION = 1


def serialize_state(state: dict) -> str:
    """{year, curriculum, lang, plan} -> JSON blob."""
    payload = {
        "version": STATE_VERSION,
        "year": state.get("year"),
        "curriculum": state.get("curriculum"),
        "lang": state.get("lang"),
        "plan": list(state.get("plan") or []),
    }
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def deserialize_state(blob: str | bytes | None) -> dict | None:
    """
    JSON blob -> {year, curriculum, lang, plan}.

    None when the blob is empty, unreadable, or written by a newer format
    version. Blobs without a version are read as the current format.
    """
    if not blob:
        return None
    try:
        data = json.loads(blob)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    version = data.get("version", STATE_VERSION)
    if not isinstance(version, int) or version > STATE_VERSION:
        return None
    plan = data.get("plan")
    return {
        "year": data.get("year"),
        "curriculum": data.get("curriculum"),
        "lang": data.get("lang"),
        "plan": plan if isinstance(plan, list) else [],
    }


class PlanStore:
    """Directory-backed store. Keys must already be validated file-name-safe tokens."""

    def __init__(self, root: str):
        self.root = root

    def _path(self, key: str) -> str:
        return os.path.join(self.root, f"{key}.json")

    def load(self, key: str) -> dict | None:
        try:
            with open(self._path(key), encoding="utf-8") as fh:
                return deserialize_state(fh.read())
        except FileNotFoundError:
            return None

    def save(self, key: str, state: dict) -> None:
        """Atomic write: temp file in the same directory, then replace."""
        blob = serialize_state(state)
        os.makedirs(self.root, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(blob)
            os.replace(tmp_path, self._path(key))
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self, key: str) -> bool:
        try:
            os.remove(self._path(key))
            return True
        except FileNotFoundError:
            return False
