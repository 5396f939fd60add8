"""
YAML document store with atomic batch commits.

Every collection lives in one document, ``<data_dir>/store.yaml``, as a
mapping of collection name to a mapping of record id to record. Reads and
writes are serialised with a FileLock and a commit replaces the document
with a single ``os.replace``, so a batch is applied completely or not at all.
"""
import copy
import logging
import os
import tempfile
import yaml
from filelock import FileLock

from progression.errors import ConflictError

logger = logging.getLogger(__name__)

STORE_FILE = 'store.yaml'


class NotFoundError(LookupError):
    """A record requested by id does not exist."""


class YamlStore:
    def __init__(self, data_dir, lock_timeout=10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self.path = os.path.join(data_dir, STORE_FILE)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _load(self):
        """Whole document; callers hold the lock."""
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def _read(self, collection):
        with self._lock:
            return self._load().get(collection) or {}

    def _write(self, document):
        """Write to a temp file next to the document; the caller replaces it."""
        fd, tmp_path = tempfile.mkstemp(prefix='.store.', suffix='.tmp', dir=self.data_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.dump(document, f, default_flow_style=False, allow_unicode=True)
        except Exception:
            os.remove(tmp_path)
            raise
        return tmp_path

    def get(self, collection, record_id):
        """Return a copy of one record, or None."""
        record = self._read(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def require(self, collection, record_id):
        record = self.get(collection, record_id)
        if record is None:
            raise NotFoundError(f'{collection} record not found: {record_id}')
        return record

    def scan(self, collection, **filters):
        """Return every record of a collection whose fields equal ``filters``."""
        records = self._read(collection).values()
        return [copy.deepcopy(r) for r in records
                if all(r.get(key) == value for key, value in filters.items())]

    def batch(self):
        return Batch(self)


class Batch:
    """Staged writes committed together under the store lock."""

    def __init__(self, store):
        self.store = store
        self._operations = []

    def set(self, collection, record_id, record):
        self._operations.append(('set', collection, record_id, copy.deepcopy(record), None))
        return self

    def update(self, collection, record_id, fields, expected_version=None):
        """Merge ``fields`` into a record, bumping its version.

        With ``expected_version`` the commit fails with ConflictError if the
        stored record has moved on.
        """
        self._operations.append(('update', collection, record_id, copy.deepcopy(fields), expected_version))
        return self

    def delete(self, collection, record_id):
        self._operations.append(('delete', collection, record_id, None, None))
        return self

    def __len__(self):
        return len(self._operations)

    def commit(self):
        if not self._operations:
            return
        store = self.store
        with store._lock:
            document = store._load()
            for op, collection, record_id, payload, expected_version in self._operations:
                records = document.setdefault(collection, {})
                if op == 'set':
                    records[record_id] = payload
                elif op == 'delete':
                    records.pop(record_id, None)
                else:
                    record = records.get(record_id)
                    if record is None:
                        raise NotFoundError(f'{collection} record not found: {record_id}')
                    version = record.get('version', 0)
                    if expected_version is not None and version != expected_version:
                        raise ConflictError(
                            f'{collection}/{record_id} is at version {version}, expected {expected_version}')
                    record.update(payload)
                    record['version'] = version + 1

            tmp_path = store._write(document)
            try:
                os.replace(tmp_path, store.path)
            except Exception:
                os.remove(tmp_path)
                raise
        logger.debug('Committed %d operations to %s', len(self._operations), store.path)
        self._operations = []
