"""Server registry: durable store of server records"""

import copy
import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConflictError, NotFoundError
from .models import ServerConfig, ServerRecord, ServerStatus, utcnow

logger = logging.getLogger(__name__)

# Bookkeeping fields update_status() may change alongside the status
STATUS_FIELDS = ("provider_server_id", "ip_address", "port", "deployment_id", "error_message")


class ServerRegistry:
    """
    Stores ServerRecords in state.json

    Writes to a single record are serialized by a per-record lock so a status
    write and a usage-counter write from the telemetry updater cannot lose
    each other's changes. Readers always get copies.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize ServerRegistry

        Args:
            config_dir: Directory for state.json; None keeps records in memory only
        """
        self.config_dir = config_dir
        self.state_file = config_dir / "state.json" if config_dir else None
        self._records: Dict[str, ServerRecord] = {}
        self._jobs: List[Dict[str, Any]] = []
        self._file_lock = threading.RLock()
        self._record_locks: Dict[str, threading.Lock] = {}

    def init(self) -> None:
        """Initialize state file"""
        if self.state_file is None:
            return
        if not self.state_file.exists():
            logger.info("Creating initial state file")
            self.save()
        else:
            self.load()

    def load(self) -> None:
        if self.state_file is None or not self.state_file.exists():
            return

        with self._file_lock:
            logger.debug(f"Loading state from {self.state_file}")
            with open(self.state_file, 'r') as f:
                state = json.load(f)

            self._records = {
                server_id: ServerRecord.from_dict(data)
                for server_id, data in state.get("servers", {}).items()
            }
            self._jobs = state.get("jobs", [])
            self._record_locks = {server_id: threading.Lock() for server_id in self._records}

        logger.info(f"Loaded {len(self._records)} server records")

    def save(self) -> None:
        """Save state to file with backup"""
        if self.state_file is None:
            return

        with self._file_lock:
            if self.state_file.exists():
                shutil.copy2(self.state_file, self.state_file.with_suffix('.json.backup'))

            state = {
                "servers": {server_id: record.to_dict() for server_id, record in self._records.items()},
                "jobs": self._jobs,
            }
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.state_file, 'w') as f:
                json.dump(state, f, indent=2, default=str)

    def _lock_for(self, server_id: str) -> threading.Lock:
        with self._file_lock:
            if server_id not in self._records:
                raise NotFoundError(f"Server {server_id} not found")
            return self._record_locks.setdefault(server_id, threading.Lock())

    # ==================== RECORDS ====================

    def create(self, record: ServerRecord) -> ServerRecord:
        """
        Add a new record

        Raises:
            ConflictError: If a record with the same id exists
        """
        with self._file_lock:
            if record.id in self._records:
                raise ConflictError(f"Server {record.id} already exists")
            self._records[record.id] = copy.deepcopy(record)
            self._record_locks[record.id] = threading.Lock()
            self.save()

        logger.info(f"Added server {record.id} ({record.name}) for {record.owner}")
        return copy.deepcopy(record)

    def get(self, server_id: str) -> ServerRecord:
        """
        Get a record by id

        Raises:
            NotFoundError: If no such record
        """
        with self._file_lock:
            record = self._records.get(server_id)
            if record is None:
                raise NotFoundError(f"Server {server_id} not found")
            return copy.deepcopy(record)

    def update_status(self, server_id: str, status: ServerStatus, **changes) -> ServerRecord:
        """
        Set a record's status and optional bookkeeping fields

        Args:
            server_id: Record id
            status: New status
            **changes: Any of provider_server_id, ip_address, port,
                deployment_id, error_message
        """
        unknown = set(changes) - set(STATUS_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields via update_status: {sorted(unknown)}")

        with self._lock_for(server_id), self._file_lock:
            record = self._records.get(server_id)
            if record is None:
                raise NotFoundError(f"Server {server_id} not found")
            record.status = ServerStatus(status)
            for key, value in changes.items():
                setattr(record, key, value)
            record.last_active = utcnow()
            self.save()
            logger.info(f"Server {server_id} status -> {record.status.value}")
            return copy.deepcopy(record)

    def update_usage(self, server_id: str, **counters) -> ServerRecord:
        """Write telemetry counters (cpu_usage, current_players, ...)"""
        unknown = set(counters) - set(ServerRecord.USAGE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown usage counters: {sorted(unknown)}")

        with self._lock_for(server_id), self._file_lock:
            record = self._records.get(server_id)
            if record is None:
                raise NotFoundError(f"Server {server_id} not found")
            for key, value in counters.items():
                setattr(record, key, value)
            record.last_active = utcnow()
            self.save()
            return copy.deepcopy(record)

    def update_config(self, server_id: str, config: ServerConfig) -> ServerRecord:
        """Replace the embedded config (re-deploy of an existing name)"""
        with self._lock_for(server_id), self._file_lock:
            record = self._records.get(server_id)
            if record is None:
                raise NotFoundError(f"Server {server_id} not found")
            record.config = config
            record.port = config.port
            self.save()
            return copy.deepcopy(record)

    def list_by_owner(self, owner: str) -> List[ServerRecord]:
        """Records for owner, oldest first"""
        with self._file_lock:
            records = [copy.deepcopy(r) for r in self._records.values() if r.owner == owner]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def find_by_name(self, owner: str, name: str) -> Optional[ServerRecord]:
        with self._file_lock:
            for record in self._records.values():
                if record.owner == owner and record.name == name:
                    return copy.deepcopy(record)
        return None

    def delete(self, server_id: str) -> None:
        with self._lock_for(server_id):
            with self._file_lock:
                del self._records[server_id]
                self._record_locks.pop(server_id, None)
                self.save()
        logger.info(f"Removed server {server_id} from state")

    def __len__(self) -> int:
        return len(self._records)

    # ==================== JOBS ====================

    def load_jobs(self) -> List[Dict[str, Any]]:
        return list(self._jobs)

    def save_jobs(self, jobs: List[Dict[str, Any]]) -> None:
        with self._file_lock:
            self._jobs = list(jobs)
            self.save()
