"""Run commands on the live system"""
from dataclasses import dataclass
from subprocess import CompletedProcess, TimeoutExpired, run
from typing import Protocol

from sync_state.exceptions import CmdError

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class CmdResult:
    """Captured output of a finished command"""

    stdout: str
    exit_code: int

    @property
    def ok(self) -> bool:
        """Whether the command exited successfully"""
        return self.exit_code == 0


class CommandExecutor(Protocol):
    """
    Run a command with a timeout and return its output and exit status
    """

    def run(self, args: list[str], timeout: float) -> CmdResult:
        pass


class CmdRunner:
    """CommandExecutor running real processes through subprocess"""

    def run(self, args: list[str], timeout: float = DEFAULT_TIMEOUT) -> CmdResult:
        """
        Run a cmd command using subprocess run method.
        A non-zero exit status is returned, not raised. The process is killed
        when the timeout expires.
        :param args: arguments to pass to the command line
        :param timeout: seconds to wait for the command
        :return: stdout and exit status of the command
        :throws: CmdError
        """
        try:
            result: CompletedProcess = run(
                args=args, check=False, text=True, capture_output=True, timeout=timeout
            )
        except TimeoutExpired as error:
            raise CmdError(f"Running {args} timed out after {timeout}s") from error
        except FileNotFoundError as error:
            raise CmdError(f"Running {args} failed\n{error}") from error
        return CmdResult(stdout=result.stdout, exit_code=result.returncode)
