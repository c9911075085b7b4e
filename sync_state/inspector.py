"""Inspect and change the live system through a command executor"""
import logging
import re
from dataclasses import dataclass

from sync_state.cmd_runner import DEFAULT_TIMEOUT, CmdResult, CommandExecutor
from sync_state.exceptions import CmdError
from sync_state.models import ServiceState, SystemState

LOGGER = logging.getLogger(__name__)

HOSTNAME_CMD = ["hostname"]
TIMEZONE_CMD = ["timedatectl", "show", "-p", "Timezone", "--value"]
LOCALE_CMD = ["localectl", "status"]
KERNEL_CMD = ["uname", "-r"]
UPTIME_CMD = ["uptime", "-p"]
LIST_SERVICES_CMD = [
    "systemctl",
    "list-units",
    "--type=service",
    "--all",
    "--no-pager",
    "--plain",
    "--no-legend",
]
LIST_PACKAGES_CMD = ["pacman", "-Qq"]


def parse_locale(localectl_output: str) -> str:
    """
    Extract the system locale from `localectl status` output
    :param localectl_output: output of localectl status
    :return: the system locale, e.g. LANG=en_US.UTF-8, empty if not found
    """
    for line in localectl_output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "System Locale":
            return value.strip()
    return ""


def parse_service_units(list_units_output: str) -> dict[str, ServiceState]:
    """
    Parse `systemctl list-units --plain --no-legend` output
    :param list_units_output: one unit per line: UNIT LOAD ACTIVE SUB DESCRIPTION
    :return: service states keyed by service name (without .service suffix)
    """
    services: dict[str, ServiceState] = {}
    for line in list_units_output.splitlines():
        parts = re.split(r"\s+", line.strip(), maxsplit=4)
        if len(parts) < 4:
            continue
        name = parts[0].removesuffix(".service")
        services[name] = ServiceState(
            name=name, loaded=parts[1], active=parts[2], running=parts[3]
        )
    return services


def parse_package_list(output: str) -> list[str]:
    """Non blank lines of a package listing"""
    return [line.strip() for line in output.splitlines() if line.strip()]


@dataclass(frozen=True)
class SystemInspector:
    """
    Live system commands used by snapshot, restore and sync checks.
    Queries raise CmdError when a command cannot run or exits with an error.
    """

    executor: CommandExecutor
    timeout: float = DEFAULT_TIMEOUT

    def _run(self, args: list[str]) -> CmdResult:
        return self.executor.run(args, self.timeout)

    def _query(self, args: list[str]) -> str:
        result = self._run(args)
        if not result.ok:
            raise CmdError(f"Running {args} exited with status {result.exit_code}")
        return result.stdout

    def _optional_query(self, args: list[str]) -> str:
        try:
            return self._query(args)
        except CmdError as err:
            LOGGER.warning("Could not read %s: %s", args[0], err)
            return ""

    def hostname(self) -> str:
        """Current hostname"""
        return self._query(HOSTNAME_CMD).strip()

    def system_state(self) -> SystemState:
        """
        Capture hostname, timezone, locale, kernel and uptime.
        Hostname and timezone are required, the other fields are left empty
        when their command fails.
        :raises CmdError: when hostname or timezone cannot be read
        """
        return SystemState(
            hostname=self.hostname(),
            timezone=self._query(TIMEZONE_CMD).strip(),
            locale=parse_locale(self._optional_query(LOCALE_CMD)),
            kernel=self._optional_query(KERNEL_CMD).strip(),
            uptime=self._optional_query(UPTIME_CMD).strip(),
        )

    def service_states(self) -> dict[str, ServiceState]:
        """Capture the status of every service unit"""
        return parse_service_units(self._query(LIST_SERVICES_CMD))

    def installed_packages(self) -> list[str]:
        """Capture installed package names"""
        return parse_package_list(self._query(LIST_PACKAGES_CMD))

    def is_service_enabled(self, name: str) -> bool:
        """
        Check whether a service is enabled.
        `systemctl is-enabled` exits non-zero for disabled units, so only the
        printed state is considered.
        """
        result = self._run(["systemctl", "is-enabled", name])
        return result.stdout.strip() == "enabled"

    def _apply(self, args: list[str]) -> None:
        result = self._run(args)
        if not result.ok:
            raise CmdError(f"Running {args} exited with status {result.exit_code}")
        LOGGER.info("Ran %s", " ".join(args))

    def set_hostname(self, hostname: str) -> None:
        """Set the hostname"""
        self._apply(["hostnamectl", "set-hostname", hostname])

    def set_timezone(self, timezone: str) -> None:
        """Set the timezone"""
        self._apply(["timedatectl", "set-timezone", timezone])

    def start_service(self, name: str) -> None:
        """Start a service"""
        self._apply(["systemctl", "start", name])

    def stop_service(self, name: str) -> None:
        """Stop a service"""
        self._apply(["systemctl", "stop", name])
