"""Detect drift between a configuration and the live system"""
import logging
from dataclasses import dataclass

from sync_state.config import CompiledConfig
from sync_state.exceptions import CmdError
from sync_state.inspector import SystemInspector
from sync_state.models import InSync, OutOfSync, SyncIssue, SyncStatus

LOGGER = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass(frozen=True)
class SyncChecker:
    """
    Compare a configuration with the live system.
    Read only, and every declared item is checked even after a mismatch.
    """

    inspector: SystemInspector

    def check_hostname(self, config: CompiledConfig) -> list[SyncIssue]:
        """Compare the declared hostname with the live one"""
        try:
            actual = self.inspector.hostname()
        except CmdError as err:
            LOGGER.warning("Could not read hostname: %s", err)
            actual = UNKNOWN
        if actual == config.system.hostname:
            return []
        return [
            SyncIssue(
                component="system",
                field="hostname",
                expected=config.system.hostname,
                actual=actual,
            )
        ]

    def check_services(self, config: CompiledConfig) -> list[SyncIssue]:
        """Compare each declared service enabled flag with the live one"""
        issues: list[SyncIssue] = []
        for service in config.services:
            expected = str(service.enabled).lower()
            try:
                actual = str(self.inspector.is_service_enabled(service.name)).lower()
            except CmdError as err:
                LOGGER.warning("Could not check service %s: %s", service.name, err)
                actual = UNKNOWN
            if actual != expected:
                issues.append(
                    SyncIssue(
                        component="service",
                        field=service.name,
                        expected=expected,
                        actual=actual,
                    )
                )
        return issues

    def check_packages(self, config: CompiledConfig) -> list[SyncIssue]:
        """Check that every package to install is installed"""
        wanted = config.installed_packages
        if not wanted:
            return []
        try:
            installed = set(self.inspector.installed_packages())
            missing_state = "not installed"
        except CmdError as err:
            LOGGER.warning("Could not list installed packages: %s", err)
            installed = set()
            missing_state = UNKNOWN
        return [
            SyncIssue(
                component="package",
                field=name,
                expected="installed",
                actual=missing_state,
            )
            for name in wanted
            if name not in installed
        ]

    def check_sync(self, config: CompiledConfig) -> SyncStatus:
        """
        Report every drift between the configuration and the live system
        :param config: the declared configuration
        :return: InSync, or OutOfSync with all issues found
        """
        issues = (
            self.check_hostname(config)
            + self.check_services(config)
            + self.check_packages(config)
        )
        if not issues:
            return InSync()
        return OutOfSync(issues=issues)
