"""Docker engine adapter exposing the operations the lifecycle needs."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Iterator, Optional, Protocol

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from ..errors import ConnectivityError, ImageError, LifecycleError
from ..utils.logging import get_logger


class ExecHandle:
    """Completion signal for a command running inside the sandbox."""

    def __init__(self, future: "Future[Optional[int]]", command: str) -> None:
        self.future = future
        self.command = command

    def done(self) -> bool:
        return self.future.done()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the command finishes and return its exit code.

        ``timeout=None`` blocks indefinitely.
        """

        try:
            return self.future.result(timeout=timeout)
        except FutureTimeout as exc:
            raise LifecycleError(f"Command {self.command!r} still running after {timeout}s") from exc


class ContainerEngine(Protocol):
    def image_exists(self, image: str) -> bool: ...

    def pull(self, image: str) -> None: ...

    def container_exists(self, name: str) -> bool: ...

    def get_container(self, name: str) -> Any: ...

    def create(self, image: str, name: str) -> Any: ...

    def start(self, container: Any) -> None: ...

    def exec_async(self, container: Any, command: str) -> ExecHandle: ...

    def inspect_address(self, container: Any) -> str: ...

    def copy_archive(self, container: Any, path: str) -> Iterator[bytes]: ...

    def stop(self, container: Any) -> None: ...

    def remove(self, container: Any, force: bool = False) -> None: ...


def _consume_exec(
    client: docker.DockerClient, exec_id: str, stream: Iterator[bytes], logger: Any
) -> Optional[int]:
    try:
        for chunk in stream:
            for line in chunk.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    logger.debug("sandbox_output", line=line)
        return client.api.exec_inspect(exec_id).get("ExitCode")
    except (DockerException, OSError) as exc:
        raise LifecycleError(f"Sandbox command failed: {exc}") from exc


class DockerEngine:
    """Thin wrapper over the docker SDK that translates its errors."""

    def __init__(self, client: Optional[docker.DockerClient] = None, timeout: int = 30) -> None:
        try:
            self.client = client if client is not None else docker.from_env(timeout=timeout)
            self.client.ping()
        except (DockerException, OSError) as exc:
            raise ConnectivityError(f"Could not connect to docker: {exc}") from exc
        self.logger = get_logger(__name__)

    def image_exists(self, image: str) -> bool:
        try:
            self.client.images.get(image)
        except ImageNotFound:
            return False
        except APIError as exc:
            raise ImageError(f"Could not inspect image {image}: {exc}") from exc
        return True

    def pull(self, image: str) -> None:
        self.logger.info("image_pull", image=image)
        try:
            self.client.images.pull(image)
        except (NotFound, APIError) as exc:
            raise ImageError(f"Error while pulling image: {image}") from exc

    def container_exists(self, name: str) -> bool:
        try:
            containers = self.client.containers.list(all=True, filters={"name": name})
        except APIError as exc:
            raise LifecycleError(f"Could not list containers: {exc}") from exc
        # the name filter is a substring match
        return any(container.name == name for container in containers)

    def get_container(self, name: str) -> Any:
        try:
            return self.client.containers.get(name)
        except NotFound as exc:
            raise LifecycleError(f"No container named {name}") from exc

    def create(self, image: str, name: str) -> Any:
        try:
            return self.client.containers.create(image, name=name, tty=True, detach=True)
        except ImageNotFound as exc:
            raise ImageError(f"Image disappeared before create: {image}") from exc
        except APIError as exc:
            raise LifecycleError(f"Could not create container {name}: {exc}") from exc

    def start(self, container: Any) -> None:
        try:
            container.start()
        except APIError as exc:
            raise LifecycleError(f"Could not start container {container.name}: {exc}") from exc

    def exec_async(self, container: Any, command: str) -> ExecHandle:
        try:
            exec_id = self.client.api.exec_create(
                container.id, ["bash", "-c", command], stdout=True, stderr=True
            )["Id"]
            stream = self.client.api.exec_start(exec_id, stream=True)
        except APIError as exc:
            raise LifecycleError(f"Could not execute {command!r}: {exc}") from exc
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sandbox-exec")
        future = executor.submit(_consume_exec, self.client, exec_id, stream, self.logger)
        executor.shutdown(wait=False)
        return ExecHandle(future, command)

    def inspect_address(self, container: Any) -> str:
        try:
            container.reload()
        except APIError as exc:
            raise LifecycleError(f"Could not inspect container {container.name}: {exc}") from exc
        networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
        if not networks:
            raise LifecycleError(f"Container {container.name} has no network attached")
        if len(networks) > 1:
            self.logger.warning("multiple_networks", container=container.name,
                                networks=list(networks), using=next(iter(networks)))
        address = next(iter(networks.values())).get("IPAddress")
        if not address:
            raise LifecycleError(f"Container {container.name} has no IP address yet")
        return address

    def copy_archive(self, container: Any, path: str) -> Iterator[bytes]:
        try:
            bits, _ = container.get_archive(path)
        except NotFound as exc:
            raise LifecycleError(f"{path} not found in container {container.name}") from exc
        except APIError as exc:
            raise LifecycleError(f"Could not copy {path} from {container.name}: {exc}") from exc
        return bits

    def stop(self, container: Any) -> None:
        try:
            container.kill()
        except NotFound:
            return
        except APIError as exc:
            if exc.status_code == 409:  # not running
                return
            raise LifecycleError(f"Could not stop container {container.name}: {exc}") from exc

    def remove(self, container: Any, force: bool = False) -> None:
        try:
            container.remove(force=force)
        except NotFound:
            return
        except APIError as exc:
            raise LifecycleError(f"Could not remove container {container.name}: {exc}") from exc
