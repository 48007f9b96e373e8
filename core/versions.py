"""Append-only, in-memory version log of file-set snapshots."""

import copy
import time
import uuid

from core.state import VersionEntry


class VersionStore:
    """Records immutable snapshots of the live file set.

    Snapshots are deep copies on the way in and on the way out, so neither
    later edits to the live set nor edits to a restored set can reach a
    stored entry.
    """

    def __init__(self):
        self._entries = []

    def record(self, description, files, error=None):
        entry = VersionEntry(
            id=uuid.uuid4().hex[:8],
            timestamp=time.time(),
            files=tuple(copy.deepcopy(list(files))),
            description=description,
            error=copy.deepcopy(error),
        )
        self._entries.append(entry)
        return entry

    def restore(self, version_id):
        """Return a copy of the snapshot's files, or None if the id is unknown."""
        entry = self.get(version_id)
        if entry is None:
            return None
        return copy.deepcopy(list(entry.files))

    def get(self, version_id):
        for entry in self._entries:
            if entry.id == version_id:
                return entry
        return None

    def latest(self):
        return self._entries[-1] if self._entries else None

    def list(self):
        return list(self._entries)

    def __len__(self):
        return len(self._entries)
