# src/procmon/docker.py
"""Docker container discovery through the ``docker`` CLI.

Docker mode narrows the monitored set to the main process of each running
container. The container list is cached for a few seconds because listing
needs one ``docker inspect`` call per container.
"""

from __future__ import annotations

import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger()

CONTAINER_CACHE_TTL = 5.0  # seconds
PS_FORMAT = "{{.ID}}|{{.Names}}|{{.Image}}|{{.Status}}"
PID_FORMAT = "{{.State.Pid}}"

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True)
class DockerContainer:
    """A running container and the host PID of its main process."""

    id: str
    name: str
    image: str
    status: str
    pid: int


def is_docker_available(run: Runner = subprocess.run) -> bool:
    """Whether the docker CLI is installed and answers."""
    try:
        run(["docker", "--version"], capture_output=True, check=True, timeout=3)
    except (OSError, subprocess.SubprocessError):
        return False
    return True


def format_container_name(container: DockerContainer, max_length: int = 30) -> str:
    """``[shortid] name``, truncated with "..." to max_length."""
    prefix = f"[{container.id[:8]}] "
    if len(prefix) + len(container.name) <= max_length:
        return prefix + container.name
    return prefix + container.name[: max_length - len(prefix) - 3] + "..."


class DockerInspector:
    """Running containers by main-process PID, refreshed at most once per TTL."""

    def __init__(
        self,
        ttl: float = CONTAINER_CACHE_TTL,
        run: Runner = subprocess.run,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._run = run
        self._clock = clock
        self._cache: dict[int, DockerContainer] = {}
        self._fetched_at: float | None = None

    def _container_pid(self, container_id: str) -> int | None:
        try:
            result = self._run(
                ["docker", "inspect", "--format", PID_FORMAT, container_id],
                capture_output=True,
                text=True,
                check=True,
                timeout=3,
            )
            pid = int(result.stdout.strip())
        except (OSError, subprocess.SubprocessError, ValueError):
            log.debug("docker_inspect_failed", container=container_id)
            return None
        return pid if pid > 0 else None

    def get_containers(self) -> list[DockerContainer]:
        """Running containers that have a main-process PID.

        A failed listing returns an empty list and leaves the cache untouched.
        """
        now = self._clock()
        if self._fetched_at is not None and now - self._fetched_at < self.ttl and self._cache:
            return list(self._cache.values())

        try:
            result = self._run(
                ["docker", "ps", "--format", PS_FORMAT],
                capture_output=True,
                text=True,
                check=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.warning("docker_ps_failed", error=str(e))
            return []

        containers: list[DockerContainer] = []
        for line in result.stdout.strip().splitlines():
            parts = line.split("|")
            if not parts[0]:
                continue
            parts += [""] * (4 - len(parts))
            container_id, name, image, status = parts[:4]
            pid = self._container_pid(container_id)
            if pid is None:
                continue
            containers.append(
                DockerContainer(
                    id=container_id[:12], name=name, image=image, status=status, pid=pid
                )
            )

        self._cache = {c.pid: c for c in containers}
        self._fetched_at = now
        return containers
