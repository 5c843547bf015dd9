"""
KubeScan - Facts and Fact Providers

Facts are observed values about the audited host, collected once per run
into an immutable FactSnapshot before any rule is evaluated. The engine
never talks to the operating system itself; it only consumes the narrow
FactProvider interface defined here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
from pathlib import Path
import shlex
import threading
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from .errors import (
    FactCollectionFatalError,
    GateEvaluationFailure,
)


def parse_command_line(command_line: str) -> dict[str, Optional[str]]:
    """Parse a process command line into a flag mapping.

    Accepts ``--name=value``, ``--name value`` and bare ``--name`` forms.
    The leading executable is skipped and parsing stops at ``--``.
    When a flag is repeated the last occurrence wins.

    Args:
        command_line: Full command line as a single string

    Returns:
        Mapping of flag name (without dashes) to value, or None for
        presence-only flags
    """
    try:
        tokens = shlex.split(command_line)
    except ValueError:
        # Unbalanced quotes; fall back to plain whitespace splitting
        tokens = command_line.split()

    flags: dict[str, Optional[str]] = {}
    index = 0
    if tokens and not tokens[0].startswith("-"):
        index = 1

    while index < len(tokens):
        token = tokens[index]
        index += 1

        if token == "--":
            break
        if not token.startswith("-") or token == "-":
            continue

        name = token.lstrip("-")
        value: Optional[str]
        if "=" in name:
            name, value = name.split("=", 1)
        elif index < len(tokens) and not tokens[index].startswith("-"):
            value = tokens[index]
            index += 1
        else:
            value = None

        if name:
            flags[name] = value

    return flags


@dataclass(frozen=True)
class Fact:
    """An observed value about the host.

    Attributes:
        name: Fact name (the process the command line belongs to)
        value: Observed payload, or None when not found
        error: Non-empty when the value could not be obtained
        flags: Read-only flag mapping parsed from the value
    """

    name: str
    value: Optional[str] = None
    error: str = ""
    flags: Mapping[str, Optional[str]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Fact name cannot be empty")
        object.__setattr__(
            self, "flags", MappingProxyType(parse_command_line(self.value or ""))
        )

    @property
    def present(self) -> bool:
        """Whether a payload was observed."""
        return self.value is not None

    @property
    def available(self) -> bool:
        """Whether the fact was collected without error."""
        return not self.error

    @property
    def text(self) -> str:
        """Payload as a string; an absent fact reads as empty."""
        return self.value or ""


class FactSnapshot:
    """Immutable set of facts collected for one run.

    Two assertions reading the same fact during a run always see the same
    Fact object.
    """

    def __init__(
        self,
        presence: Mapping[str, Optional[bool]],
        facts: Mapping[str, Fact],
    ) -> None:
        self._presence = MappingProxyType(dict(presence))
        self._facts = MappingProxyType(dict(facts))

    def exists(self, process_name: str) -> bool:
        """Report whether a process was observed running.

        Raises:
            GateEvaluationFailure: If existence could not be determined
        """
        if process_name not in self._presence:
            raise GateEvaluationFailure(
                f"Process '{process_name}' was not part of the fact collection"
            )

        running = self._presence[process_name]
        if running is None:
            reason = self._facts[process_name].error or "unknown error"
            raise GateEvaluationFailure(
                f"Could not determine whether '{process_name}' is running: {reason}"
            )
        return running

    def command_line(self, process_name: str) -> Fact:
        """Get the command-line fact for a process."""
        fact = self._facts.get(process_name)
        if fact is None:
            return Fact(
                name=process_name,
                error=f"Process '{process_name}' was not part of the fact collection",
            )
        return fact

    @property
    def names(self) -> list[str]:
        """Names of all collected facts in collection order."""
        return list(self._facts)

    def __contains__(self, process_name: str) -> bool:
        return process_name in self._facts

    def __len__(self) -> int:
        return len(self._facts)


class FactProvider(ABC):
    """Source of raw observations about the host.

    Implementations may perform I/O. They raise FactCollectionFatalError
    when nothing can be observed at all (e.g. the process table cannot be
    read), GateEvaluationFailure when a single existence query fails and
    FactUnavailableError when a running process's command line cannot be
    read. A PermissionError from exists() is treated as fatal; any other
    exception is confined to the process it concerns.
    """

    @abstractmethod
    def exists(self, process_name: str) -> bool:
        """Return True if a process with this name is running."""

    @abstractmethod
    def command_line(self, process_name: str) -> Optional[str]:
        """Return the full command line of the process, or None."""


class StaticFactProvider(FactProvider):
    """Fact provider backed by an in-memory process table.

    Example:
        provider = StaticFactProvider({
            "kube-apiserver": "kube-apiserver --anonymous-auth=false",
        })
        provider.exists("kube-apiserver")  # True
        provider.exists("etcd")            # False
    """

    def __init__(self, processes: Optional[Mapping[str, Optional[str]]] = None) -> None:
        self._processes: dict[str, Optional[str]] = dict(processes or {})

    def exists(self, process_name: str) -> bool:
        return process_name in self._processes

    def command_line(self, process_name: str) -> Optional[str]:
        return self._processes.get(process_name)


class JSONFactProvider(StaticFactProvider):
    """Fact provider reading a recorded snapshot from a JSON file.

    The file has the shape ``{"processes": {NAME: COMMAND_LINE_OR_NULL}}``.
    Listed processes exist; unlisted ones do not. The file is read lazily
    on first query so an unreadable snapshot aborts the run that uses it.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._loaded = False
        self._lock = threading.Lock()

    def _load(self) -> None:
        with self._lock:
            if self._loaded:
                return

            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    data: Any = json.load(f)
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                raise FactCollectionFatalError(
                    f"Cannot read fact snapshot {self._path}: {e}"
                ) from e

            processes = data.get("processes") if isinstance(data, dict) else None
            if not isinstance(processes, dict):
                raise FactCollectionFatalError(
                    f"Fact snapshot {self._path} has no 'processes' object"
                )

            self._processes = {
                str(name): (None if value is None else str(value))
                for name, value in processes.items()
            }
            self._loaded = True

    def exists(self, process_name: str) -> bool:
        self._load()
        return super().exists(process_name)

    def command_line(self, process_name: str) -> Optional[str]:
        self._load()
        return super().command_line(process_name)


def collect_facts(provider: FactProvider, process_names: Iterable[str]) -> FactSnapshot:
    """Collect every requested fact from the provider exactly once.

    Args:
        provider: Source of observations
        process_names: Processes whose existence and command line are needed

    Returns:
        FactSnapshot with one entry per distinct process name

    Raises:
        FactCollectionFatalError: If the provider cannot produce any facts,
            including when it lacks permission to query processes
    """
    presence: dict[str, Optional[bool]] = {}
    facts: dict[str, Fact] = {}

    for name in dict.fromkeys(process_names):
        try:
            running = bool(provider.exists(name))
        except FactCollectionFatalError:
            raise
        except PermissionError as e:
            # No privilege to enumerate processes means no facts at all
            raise FactCollectionFatalError(
                f"Cannot query process '{name}': {e}"
            ) from e
        except Exception as e:
            presence[name] = None
            facts[name] = Fact(name=name, error=f"{type(e).__name__}: {e}")
            continue

        presence[name] = running
        if not running:
            facts[name] = Fact(name=name)
            continue

        try:
            facts[name] = Fact(name=name, value=provider.command_line(name))
        except FactCollectionFatalError:
            raise
        except Exception as e:
            facts[name] = Fact(name=name, error=f"{type(e).__name__}: {e}")

    return FactSnapshot(presence, facts)
