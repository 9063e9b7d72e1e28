"""Sandbox lifecycle state machine."""

from __future__ import annotations

import shutil
import tarfile
import tempfile
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional

from ..config.types import SandboxConfig
from ..errors import LifecycleError
from ..utils.logging import get_logger
from .engine import ContainerEngine, ExecHandle

# spool copied archives in memory up to this size before hitting disk
_SPOOL_BYTES = 32 * 1024 * 1024


class LifecycleState(str, Enum):
    ABSENT = "absent"
    PULLING = "pulling"
    CREATED = "created"
    RUNNING = "running"
    EXECUTING = "executing"
    CAPTURE_COPIED = "capture_copied"
    STOPPED = "stopped"
    REMOVED = "removed"


@dataclass
class SandboxHandle:
    """State of the sandbox owned by a :class:`SandboxLifecycle`."""

    image: str
    container_name: str
    capture_path_in_sandbox: str
    state: LifecycleState = LifecycleState.ABSENT
    network_address: Optional[str] = None
    capture_path_on_host: Optional[Path] = None
    started_at_us: Optional[int] = None
    container: Any = None


def now_micros() -> int:
    return time.time_ns() // 1_000


def extract_single_file(chunks: Iterable[bytes], destination: Path) -> Path:
    """Write the first regular file of a tar stream to ``destination``."""

    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_BYTES) as spool:
        for chunk in chunks:
            spool.write(chunk)
        spool.seek(0)
        try:
            with tarfile.open(fileobj=spool, mode="r:*") as archive:
                for member in archive:
                    if not member.isfile():
                        continue
                    source = archive.extractfile(member)
                    if source is None:
                        continue
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    with destination.open("wb") as target:
                        shutil.copyfileobj(source, target)
                    return destination
        except tarfile.TarError as exc:
            raise LifecycleError(f"Copied archive is not a valid tar stream: {exc}") from exc
    raise LifecycleError("Copied archive contains no regular file")


class SandboxLifecycle:
    """Drive one container through stale-cleanup, run, exec, copy and teardown.

    A stale container with the same name is always force-removed first, never
    reused. :meth:`teardown` is safe to call from any state and is idempotent.
    """

    def __init__(self, engine: ContainerEngine, config: SandboxConfig) -> None:
        self.engine = engine
        self.config = config
        name = config.container_name
        if config.unique_name:
            name = f"{name}-{uuid.uuid4().hex[:8]}"
        self.handle = SandboxHandle(
            image=config.image,
            container_name=name,
            capture_path_in_sandbox=config.capture_path,
        )
        self.logger = get_logger(__name__).bind(container=name)

    @property
    def state(self) -> LifecycleState:
        return self.handle.state

    def _require(self, *states: LifecycleState) -> None:
        if self.handle.state not in states:
            expected = ", ".join(state.value for state in states)
            raise LifecycleError(
                f"Illegal transition from {self.handle.state.value} (expected one of: {expected})"
            )

    def _enter(self, state: LifecycleState) -> None:
        self.logger.debug("sandbox_state", previous=self.handle.state.value, state=state.value)
        self.handle.state = state

    def prepare(self) -> SandboxHandle:
        """Remove any stale container, make sure the image exists and create the container."""

        self._require(LifecycleState.ABSENT)
        name = self.handle.container_name
        if self.engine.container_exists(name):
            self.logger.warning("stale_container_removed")
            stale = self.engine.get_container(name)
            self.engine.stop(stale)
            self.engine.remove(stale, force=True)
        if not self.engine.image_exists(self.handle.image):
            self._enter(LifecycleState.PULLING)
            self.engine.pull(self.handle.image)
        self.handle.container = self.engine.create(self.handle.image, name)
        self._enter(LifecycleState.CREATED)
        self.logger.info("sandbox_created", image=self.handle.image)
        return self.handle

    def start(self) -> SandboxHandle:
        """Start the container and discover its address."""

        self._require(LifecycleState.CREATED)
        self.engine.start(self.handle.container)
        # every packet timer is relative to this instant
        self.handle.started_at_us = now_micros()
        self._enter(LifecycleState.RUNNING)
        self.handle.network_address = self.engine.inspect_address(self.handle.container)
        self.logger.info(
            "sandbox_started",
            address=self.handle.network_address,
            started_at_us=self.handle.started_at_us,
        )
        return self.handle

    def execute(self, command: str) -> ExecHandle:
        """Launch ``command`` inside the sandbox without waiting for it."""

        self._require(LifecycleState.RUNNING)
        self.logger.info("sandbox_exec", command=command)
        handle = self.engine.exec_async(self.handle.container, command)
        self._enter(LifecycleState.EXECUTING)
        return handle

    def copy_capture(self, host_path: Path) -> Path:
        """Copy the capture file out of the sandbox.

        Only call this once both the sandbox command and the attack have
        finished; an earlier copy races the capture.
        """

        self._require(LifecycleState.EXECUTING)
        chunks = self.engine.copy_archive(self.handle.container, self.handle.capture_path_in_sandbox)
        extract_single_file(chunks, Path(host_path))
        self.handle.capture_path_on_host = Path(host_path)
        self._enter(LifecycleState.CAPTURE_COPIED)
        self.logger.info("capture_copied", host_path=str(host_path))
        return Path(host_path)

    def teardown(self) -> None:
        """Stop and remove the container, attempting both regardless of earlier failures."""

        if self.handle.state in (LifecycleState.ABSENT, LifecycleState.PULLING, LifecycleState.REMOVED):
            return
        errors: List[LifecycleError] = []
        if self.handle.state != LifecycleState.STOPPED:
            try:
                self.engine.stop(self.handle.container)
            except LifecycleError as exc:
                self.logger.error("sandbox_stop_failed", error=str(exc))
                errors.append(exc)
            else:
                self._enter(LifecycleState.STOPPED)
        try:
            self.engine.remove(self.handle.container, force=True)
        except LifecycleError as exc:
            self.logger.error("sandbox_remove_failed", error=str(exc))
            errors.append(exc)
        else:
            self._enter(LifecycleState.REMOVED)
            self.logger.info("sandbox_removed")
        if errors:
            raise LifecycleError("; ".join(str(error) for error in errors))
