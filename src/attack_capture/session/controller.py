"""Orchestrate one sandbox → attack → capture → decode → teardown session."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Optional

from ..attack.generator import AttackThread, FloodStats, UdpFlood
from ..capture.ingestion import CaptureIngestor, IngestionStats
from ..capture.labeler import AttackLabeler
from ..capture.records import RecordSet
from ..config.types import Config, validate_config
from ..errors import AttackError, SessionError
from ..sandbox.engine import ContainerEngine, DockerEngine, ExecHandle
from ..sandbox.lifecycle import SandboxLifecycle
from ..utils.io import temporary_capture_path
from ..utils.logging import get_logger, log_config


@dataclass
class SessionResult:
    container_name: str
    address: Optional[str] = None
    started_at_us: Optional[int] = None
    exec_exit_code: Optional[int] = None
    flood: Optional[FloodStats] = None
    ingestion: Optional[IngestionStats] = None


class SessionController:
    """Run attack capture sessions and own the resulting records.

    Every :meth:`run` starts a new record set and exposes it as ``records``;
    a set returned by an earlier run is never modified again.
    Sessions sharing a container name must not run concurrently; set
    ``sandbox.unique_name`` to give each session its own container.
    """

    def __init__(
        self,
        config: Config,
        engine: Optional[ContainerEngine] = None,
        flood: Optional[UdpFlood] = None,
        engine_factory: Callable[[], ContainerEngine] = DockerEngine,
    ) -> None:
        self.config = config
        self._engine = engine
        self._engine_factory = engine_factory
        self.flood = flood if flood is not None else UdpFlood(config.attack)
        self.labeler = AttackLabeler(config.attack.signature, config.attack.header_skip)
        self.records = RecordSet()
        self.last_result: Optional[SessionResult] = None
        self.logger = get_logger(__name__)

    @property
    def engine(self) -> ContainerEngine:
        if self._engine is None:
            self._engine = self._engine_factory()
        return self._engine

    def run(self) -> RecordSet:
        """Execute one complete session and return its records."""

        records = self.records = RecordSet()
        stage = "configure"
        lifecycle: Optional[SandboxLifecycle] = None
        capture_path: Optional[Path] = None
        failure: Optional[BaseException] = None
        torn_down = False
        try:
            validate_config(self.config)
            log_config(self.logger, asdict(self.config))
            stage = "connect"
            lifecycle = SandboxLifecycle(self.engine, self.config.sandbox)
            result = SessionResult(container_name=lifecycle.handle.container_name)
            self.last_result = result

            stage = "prepare"
            lifecycle.prepare()
            stage = "start"
            handle = lifecycle.start()
            result.address = handle.network_address
            result.started_at_us = handle.started_at_us

            stage = "execute"
            exec_handle = lifecycle.execute(self.config.sandbox.render_command())
            self.flood.reset()
            attack = AttackThread(self.flood, handle.network_address)
            attack.start()

            stage = "join"
            result.exec_exit_code, result.flood = self._join(exec_handle, attack)

            stage = "copy"
            capture_path = temporary_capture_path(self.config.capture.host_dir)
            lifecycle.copy_capture(capture_path)

            stage = "teardown"
            torn_down = True
            lifecycle.teardown()

            stage = "ingest"
            ingestor = CaptureIngestor(
                self.labeler,
                session_start_us=handle.started_at_us,
                max_records=self.config.capture.max_records,
                drop_before_start=self.config.capture.drop_before_start,
                show_progress=self.config.capture.show_progress,
            )
            _, result.ingestion = ingestor.ingest(capture_path, records)
        except Exception as exc:
            failure = exc
            self.logger.error("session_failed", stage=stage, error=str(exc))
            raise SessionError(stage, exc) from exc
        finally:
            self._cleanup(None if torn_down else lifecycle, capture_path, failure)

        self.logger.info(
            "session_done",
            container=result.container_name,
            records=len(records),
            attacks=records.attack_count,
            exit_code=result.exec_exit_code,
        )
        return records

    def _join(self, exec_handle: ExecHandle, attack: AttackThread) -> tuple[Optional[int], Optional[FloodStats]]:
        # both must finish before the capture is copied
        try:
            exit_code = exec_handle.wait(self.config.sandbox.exec_timeout)
        except Exception:
            attack.stop()
            try:
                attack.join()
            except AttackError as exc:
                self.logger.error("flood_failed", error=str(exc))
            raise
        attack.join()
        if exit_code:
            self.logger.warning("sandbox_command_exit", exit_code=exit_code)
        return exit_code, attack.stats

    def _cleanup(
        self,
        lifecycle: Optional[SandboxLifecycle],
        capture_path: Optional[Path],
        failure: Optional[BaseException],
    ) -> None:
        if capture_path is not None:
            capture_path.unlink(missing_ok=True)
        if lifecycle is None:
            return
        try:
            lifecycle.teardown()
        except Exception as exc:
            if failure is None:
                raise SessionError("teardown", exc) from exc
            self.logger.error("teardown_after_failure", error=str(exc))
