"""
Policy Config Stores
====================

- YAMLConfigStore: policy kept in a YAML file, hot-reloaded with watchdog
  and written back on admin updates
- InMemoryConfigStore: process-local store for tests
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from supportdesk.core import ConfigurationException
from supportdesk.policy.application import IConfigStore
from supportdesk.policy.domain import PolicyConfig, PolicyPatch
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for policy file changes."""

    def __init__(self, store: "YAMLConfigStore", config_path: Path):
        self.store = store
        self.config_path = config_path.resolve()
        super().__init__()

    def _matches(self, path: str) -> bool:
        return Path(path).resolve() == self.config_path

    def on_modified(self, event):
        if not event.is_directory and self._matches(event.src_path):
            logger.info("Policy file changed", extra={"path": event.src_path})
            self.store.reload()

    def on_created(self, event):
        self.on_modified(event)

    def on_moved(self, event):
        # Atomic writes land as a rename onto the watched path
        if not event.is_directory and self._matches(event.dest_path):
            logger.info("Policy file replaced", extra={"path": event.dest_path})
            self.store.reload()


class YAMLConfigStore(IConfigStore):
    """
    Thread-safe YAML policy store with hot-reload support.

    The file is read on load and whenever watchdog reports a change; `get()`
    never touches the disk. Listeners registered with `on_reload` (the
    snapshot cache) are told when a new policy has been loaded.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._config: Optional[PolicyConfig] = None
        self._observer = None
        self._listeners: List[Callable[[], None]] = []

    def load(self) -> PolicyConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: file exists but is not a valid policy
        """
        try:
            config = self._load_from_file()
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid policy file: {self._path}", {"error": str(e)}
            ) from e

        with self._lock:
            self._config = config
        logger.info(
            "Policy loaded",
            extra={"path": str(self._path), "policy_version": config.version}
        )
        return config

    def _load_from_file(self) -> PolicyConfig:
        if not self._path.exists():
            logger.warning("Policy file not found, using defaults", extra={"path": str(self._path)})
            return PolicyConfig()

        with open(self._path, "r") as f:
            data = yaml.safe_load(f) or {}

        return PolicyConfig.model_validate(data)

    def reload(self) -> bool:
        """Reload from file; keeps the current policy if the file is invalid."""
        try:
            new_config = self._load_from_file()
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to reload policy file, keeping current policy",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        for listener in list(self._listeners):
            listener()

        logger.info("Policy reloaded", extra={"policy_version": new_config.version})
        return True

    def on_reload(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _write(self, config: PolicyConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(config.model_dump(mode="json"), f, sort_keys=False)
            os.replace(tmp_path, self._path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def get(self) -> PolicyConfig:
        with self._lock:
            if self._config is None:
                raise ConfigurationException("Policy not loaded. Call load() first.")
            return self._config

    async def update(self, patch: PolicyPatch) -> PolicyConfig:
        with self._lock:
            if self._config is None:
                raise ConfigurationException("Policy not loaded. Call load() first.")
            updated = self._config.apply(patch)
            try:
                self._write(updated)
            except OSError as e:
                raise ConfigurationException(
                    f"Failed to write policy file: {self._path}", {"error": str(e)}
                ) from e
            self._config = updated
        return updated

    def start_watching(self) -> None:
        """
        Start watching the policy file's directory for changes.

        Skips watching if the directory does not exist or inotify is not
        available (some container runtimes).
        """
        directory = self._path.parent.resolve()
        if not directory.exists():
            logger.info("Policy directory missing, skipping file watch", extra={"path": str(directory)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(ConfigFileHandler(self, self._path), str(directory), recursive=False)
            self._observer.start()
            logger.info("Started watching policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None


class InMemoryConfigStore(IConfigStore):
    """Policy held in memory."""

    def __init__(self, initial: Optional[PolicyConfig] = None):
        self._lock = threading.Lock()
        self._config = initial or PolicyConfig()

    async def get(self) -> PolicyConfig:
        with self._lock:
            return self._config

    async def update(self, patch: PolicyPatch) -> PolicyConfig:
        with self._lock:
            self._config = self._config.apply(patch)
            return self._config
