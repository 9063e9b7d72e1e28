from __future__ import annotations

import io
import tarfile
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, List, Optional

from scapy.layers.l2 import Ether
from scapy.utils import wrpcap

from attack_capture.errors import ImageError, LifecycleError
from attack_capture.sandbox.engine import ExecHandle

SIGNATURE = bytes.fromhex("a5c3e1f00d15ea5e")
ETHER = dict(src="02:00:00:00:00:01", dst="02:00:00:00:00:02")


def stamp(packet, seconds: float):
    packet.time = seconds
    return packet


def framed(packet, seconds: float):
    """Wrap a layer-3 packet in Ethernet with a fixed arrival time."""

    return stamp(Ether(**ETHER) / packet, seconds)


def write_capture(path: Path, packets) -> Path:
    wrpcap(str(path), list(packets))
    return path


def tar_bytes(name: str, data: bytes) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class RecordingSender:
    def __init__(self, events: Optional[List[str]] = None) -> None:
        self.packets = []
        self.closed = 0
        self.events = events if events is not None else []

    def send(self, packet) -> None:
        self.packets.append(packet)
        self.events.append("send")

    def close(self) -> None:
        self.closed += 1


class FakeContainer:
    def __init__(self, name: str) -> None:
        self.name = name
        self.id = f"{name}-id"


class FakeEngine:
    """In-memory stand-in for :class:`DockerEngine`.

    ``fail`` names one operation that raises; ``capture`` builds the pcap
    bytes returned from ``copy_archive``.
    """

    def __init__(
        self,
        capture: Optional[Callable[[], bytes]] = None,
        image_present: bool = True,
        stale: bool = False,
        address: str = "172.17.0.2",
        exit_code: int = 0,
        exec_delay: float = 0.0,
        fail: Optional[str] = None,
        events: Optional[List[str]] = None,
    ) -> None:
        self.capture = capture
        self.image_present = image_present
        self.stale = stale
        self.address = address
        self.exit_code = exit_code
        self.exec_delay = exec_delay
        self.fail = fail
        self.events = events if events is not None else []
        self.calls: List[tuple] = []
        self.created: List[FakeContainer] = []

    def _call(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.fail == name:
            raise LifecycleError(f"{name} failed")

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def image_exists(self, image: str) -> bool:
        self._call("image_exists", image)
        return self.image_present

    def pull(self, image: str) -> None:
        self.calls.append(("pull", image))
        if self.fail == "pull":
            raise ImageError(f"Error while pulling image: {image}")

    def container_exists(self, name: str) -> bool:
        self._call("container_exists", name)
        return self.stale

    def get_container(self, name: str) -> FakeContainer:
        self._call("get_container", name)
        return FakeContainer(name)

    def create(self, image: str, name: str) -> FakeContainer:
        self._call("create", image, name)
        container = FakeContainer(name)
        self.created.append(container)
        return container

    def start(self, container: FakeContainer) -> None:
        self._call("start", container.name)

    def exec_async(self, container: FakeContainer, command: str) -> ExecHandle:
        self._call("exec_async", container.name, command)
        future: Future = Future()
        future.add_done_callback(lambda _: self.events.append("exec_done"))
        if self.exec_delay:
            timer = threading.Timer(self.exec_delay, future.set_result, args=(self.exit_code,))
            timer.daemon = True
            timer.start()
        else:
            future.set_result(self.exit_code)
        return ExecHandle(future, command)

    def inspect_address(self, container: FakeContainer) -> str:
        self._call("inspect_address", container.name)
        return self.address

    def copy_archive(self, container: FakeContainer, path: str):
        self.events.append("copy")
        self._call("copy_archive", container.name, path)
        data = self.capture() if self.capture is not None else b""
        payload = tar_bytes(Path(path).name, data)
        # docker streams the archive in chunks
        return iter([payload[:512], payload[512:]])

    def stop(self, container: FakeContainer) -> None:
        self._call("stop", container.name)

    def remove(self, container: FakeContainer, force: bool = False) -> None:
        self._call("remove", container.name, force)


def pcap_bytes(path: Path, packets) -> bytes:
    write_capture(path, packets)
    return path.read_bytes()
