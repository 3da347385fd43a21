"""Run a user supplied command to apply the port."""

import logging
import shlex
import subprocess

from .config import Config
from .errors import ClientError
from .torrent_client import ConnectionInfo, TorrentClient

PLACEHOLDER = "{}"


class ExecClient(TorrentClient):
    """
    Applies the port by running EXEC_COMMAND with ``{}`` replaced by the port.

    A command cannot be asked for its port, so get_port() reports the last
    port the command accepted, or 0 before the first successful run.
    """

    name = "Exec"

    def __init__(self, config: Config, logger: logging.Logger, run=subprocess.run):
        self.logger = logger
        self._run = run
        self._applied_port = 0

        args = shlex.split(config.exec_command)
        if not args:
            raise ValueError("Invalid exec command")
        if not any(PLACEHOLDER in arg for arg in args[1:]):
            raise ValueError(
                "Exec command arguments must contain the placeholder {} for the port"
            )
        self.command = args[0]
        self.args = args[1:]

    def update_connection(self) -> ConnectionInfo:
        return ConnectionInfo(host_id=self.command)

    def get_port(self) -> int:
        return self._applied_port

    def update_port(self, port: int) -> None:
        args = [arg.replace(PLACEHOLDER, str(port)) for arg in self.args]
        self.logger.info(f"Executing: {shlex.join([self.command, *args])}")

        try:
            result = self._run([self.command, *args], stdin=subprocess.DEVNULL)
        except OSError as e:
            raise ClientError(f"Failed to run {self.command}: {e}")

        if result.returncode < 0:
            raise ClientError(f"Command exited with signal {-result.returncode}")
        if result.returncode != 0:
            raise ClientError(f"Command exited with code {result.returncode}")

        self._applied_port = port
