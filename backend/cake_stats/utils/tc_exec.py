import asyncio
import logging
from typing import List, Optional, Tuple

import docker
import requests

from .errors import TcExecutionError

logger = logging.getLogger(__name__)


class TcExecutor:
    """
    Run the tc binary, either on this host or inside a docker container

    With container=None tc runs as a local subprocess; otherwise the command
    is executed in the named container through the docker SDK, which is how a
    router container's qdiscs are observed.
    """

    def __init__(self, binary: str = "tc", container: Optional[str] = None, timeout: float = 5.0):
        self.binary = binary
        self.container = container or None
        self.timeout = timeout
        self._client = None
        self._container_obj = None

    def get_container(self):
        """Get the target container (cached)"""
        if not self._container_obj:
            try:
                if self._client is None:
                    self._client = docker.from_env()
                self._container_obj = self._client.containers.get(self.container)
            except docker.errors.NotFound:
                raise TcExecutionError(f"Container '{self.container}' not found. Is it running?")
            except docker.errors.DockerException as e:
                raise TcExecutionError(f"Docker is not available: {e}")
        return self._container_obj

    def _exec_container(self, command: List[str]) -> Tuple[int, str]:
        container = self.get_container()
        try:
            result = container.exec_run(command)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            # the container or daemon may have been restarted; look it up again next time
            self._container_obj = None
            raise TcExecutionError(f"Failed to execute command: {e}")
        return result.exit_code, result.output.decode('utf-8', errors='replace')

    async def _exec_local(self, command: List[str]) -> Tuple[int, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TcExecutionError(f"Failed to start {command[0]}: {e}")
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise
        output = stdout if process.returncode == 0 else stderr or stdout
        return process.returncode, output.decode('utf-8', errors='replace')

    async def exec_command(self, args: List[str]) -> Tuple[int, str]:
        """
        Execute tc with the given arguments

        Returns:
            Tuple of (exit_code, output)

        Raises:
            TcExecutionError: If tc could not be started or timed out
        """
        command = [self.binary, *args]
        logger.debug("Running %s (container=%s)", " ".join(command), self.container or "-")
        try:
            if self.container:
                return await asyncio.wait_for(
                    asyncio.to_thread(self._exec_container, command), self.timeout
                )
            return await asyncio.wait_for(self._exec_local(command), self.timeout)
        except asyncio.TimeoutError:
            raise TcExecutionError(f"'{' '.join(command)}' timed out after {self.timeout}s")

    async def qdisc_stats(self, as_json: bool = False) -> str:
        """Return the output of "tc -s qdisc" (or "tc -j -s qdisc")"""
        args = ["-j", "-s", "qdisc"] if as_json else ["-s", "qdisc"]
        exit_code, output = await self.exec_command(args)
        if exit_code != 0:
            raise TcExecutionError(f"tc {' '.join(args)} exited with {exit_code}: {output.strip()}")
        return output

    def close(self):
        if self._client is not None:
            self._client.close()
