"""Detection of the managed service among running processes."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from vpsdash.config import Settings
from vpsdash.models import DetectionReason, DetectionResult, ProcessSnapshot

logger = logging.getLogger(__name__)


class MatchRule(ABC):
    """A named predicate over a process snapshot."""

    name = "rule"

    @abstractmethod
    def matches(self, proc: ProcessSnapshot) -> bool:
        """True if ``proc`` is the managed service."""


@dataclass(frozen=True)
class JavaCommandRule(MatchRule):
    """A java process whose command line mentions the service keyword."""

    keyword: str
    name = "java-command"

    def matches(self, proc: ProcessSnapshot) -> bool:
        return "java" in proc.name.lower() and self.keyword in proc.command.lower()


@dataclass(frozen=True)
class NameRule(MatchRule):
    """The process name contains the service keyword."""

    keyword: str
    name = "name"

    def matches(self, proc: ProcessSnapshot) -> bool:
        return self.keyword in proc.name.lower()


@dataclass(frozen=True)
class InstallPathRule(MatchRule):
    """The command line runs something from the service's install directory."""

    fragment: str
    name = "install-path"

    def matches(self, proc: ProcessSnapshot) -> bool:
        return self.fragment in proc.command.lower()


@dataclass(frozen=True)
class SubstringRule(MatchRule):
    """Any of the given substrings occurs in ``name command``."""

    needles: tuple[str, ...]
    name = "substring"

    def matches(self, proc: ProcessSnapshot) -> bool:
        haystack = f"{proc.name} {proc.command}".lower()
        return any(needle in haystack for needle in self.needles)


def default_rules(keyword: str = "minecraft", install_path: str | None = None) -> list[MatchRule]:
    """The built-in heuristic, in evaluation order."""
    keyword = keyword.lower()
    rules: list[MatchRule] = [JavaCommandRule(keyword), NameRule(keyword)]
    if install_path:
        rules.append(InstallPathRule(install_path.lower()))
    return rules


class ProcessDetector:
    """
    Finds the managed service in a process list.

    Configured override matchers replace the default heuristic entirely.
    Processes are scanned in snapshot order and the first match wins.
    """

    def __init__(
        self,
        keyword: str = "minecraft",
        install_path: str | None = None,
        overrides: Sequence[str] = (),
    ) -> None:
        needles = tuple(item.lower() for item in overrides if item)
        if needles:
            self._rules: list[MatchRule] = [SubstringRule(needles)]
            self._matched = DetectionReason.ENV_OVERRIDE
            self._unmatched = DetectionReason.ENV_OVERRIDE_NO_MATCH
        else:
            self._rules = default_rules(keyword, install_path)
            self._matched = DetectionReason.DEFAULT
            self._unmatched = DetectionReason.DEFAULT_NO_MATCH

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessDetector":
        return cls(
            keyword=settings.service_keyword,
            install_path=settings.install_path,
            overrides=settings.process_match,
        )

    def _first_rule(self, proc: ProcessSnapshot) -> MatchRule | None:
        for rule in self._rules:
            if rule.matches(proc):
                return rule
        return None

    def detect(self, processes: Iterable[ProcessSnapshot]) -> DetectionResult:
        """Return the first matching process, tagged with why it matched."""
        for proc in processes:
            rule = self._first_rule(proc)
            if rule is not None:
                logger.debug("Service matched pid %s via %s", proc.pid, rule.name)
                return DetectionResult(matched=True, pid=proc.pid, reason=self._matched, rule=rule.name)
        return DetectionResult(matched=False, pid=None, reason=self._unmatched)

    def matching(self, processes: Iterable[ProcessSnapshot]) -> list[ProcessSnapshot]:
        """Every process that matches, in snapshot order."""
        return [proc for proc in processes if self._first_rule(proc) is not None]
