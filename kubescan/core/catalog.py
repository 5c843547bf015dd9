"""
KubeScan - Rule Catalog Loading

Rule catalogs are static JSON documents loaded once before a run. This
module validates their structure and builds the immutable rule model.
Malformed regular expressions are not rejected here; they surface as
errored rules when evaluated.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
import json
from pathlib import Path
from typing import Any, Optional

from .assertion import Assertion, assertion_kinds, assertion_type
from .errors import CatalogError
from .gate import ApplicabilityGate
from .rule import AlternativeGroup, Rule, RuleGroup


@dataclass(frozen=True)
class Catalog:
    """A loaded rule catalog."""

    id: str
    title: str
    groups: tuple[RuleGroup, ...]

    @property
    def rules(self) -> list[Rule]:
        """All rules in declaration order."""
        return [rule for group in self.groups for rule in group.rules]

    @property
    def rule_ids(self) -> list[str]:
        return [rule.id for rule in self.rules]

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        """Get a rule by id.

        Args:
            rule_id: The unique identifier of the rule

        Returns:
            The rule if found, None otherwise
        """
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def __len__(self) -> int:
        return sum(len(group) for group in self.groups)

    def __contains__(self, rule_id: str) -> bool:
        return self.get_rule(rule_id) is not None


def list_available_catalogs(directory: Path) -> list[str]:
    """List catalog IDs (file stems) of the JSON catalogs in a directory.

    Args:
        directory: Directory holding ``*.json`` catalogs

    Returns:
        Sorted list of catalog identifiers
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(path.stem for path in directory.glob("*.json"))


def catalog_exists(directory: Path, catalog_id: str) -> bool:
    """Check whether a catalog file exists in a directory."""
    if not catalog_id:
        return False
    return (Path(directory) / f"{catalog_id}.json").is_file()


def load_catalog(path: Path) -> Catalog:
    """Load and validate a rule catalog from a JSON file.

    Args:
        path: Path to the catalog file

    Returns:
        Catalog instance

    Raises:
        CatalogError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CatalogError(f"{path}: cannot load catalog: {e}") from e

    return parse_catalog(data, default_id=path.stem, source=str(path))


def parse_catalog(
    data: Any,
    default_id: str = "catalog",
    source: str = "<catalog>",
) -> Catalog:
    """Build a Catalog from decoded JSON data.

    Rules may be declared inside ``groups`` (sharing the group's
    ``appliesTo`` gate) or in a flat top-level ``rules`` list where each
    rule carries its own ``appliesTo``; flat rules are grouped by
    identical gates in first-seen order.

    Raises:
        CatalogError: If the data is structurally invalid
    """
    if not isinstance(data, dict):
        raise CatalogError(f"{source}: catalog must be a JSON object")

    catalog_id = _optional_str(data, "id", source, default_id) or default_id
    title = _optional_str(data, "title", source, catalog_id) or catalog_id
    groups: list[RuleGroup] = []

    raw_groups = data.get("groups", [])
    if not isinstance(raw_groups, list):
        raise CatalogError(f"{source}: 'groups' must be a list")
    for index, raw_group in enumerate(raw_groups):
        groups.append(_parse_group(raw_group, f"{source}: groups[{index}]"))

    raw_rules = data.get("rules", [])
    if not isinstance(raw_rules, list):
        raise CatalogError(f"{source}: 'rules' must be a list")
    groups.extend(_group_flat_rules(raw_rules, catalog_id, source))

    if not groups:
        raise CatalogError(f"{source}: catalog defines no rules")

    seen: dict[str, str] = {}
    for group in groups:
        for rule in group.rules:
            if rule.id in seen:
                raise CatalogError(
                    f"{source}: rule id '{rule.id}' is defined more than once "
                    f"(groups '{seen[rule.id]}' and '{group.id}')"
                )
            seen[rule.id] = group.id

    return Catalog(
        id=catalog_id,
        title=title,
        groups=tuple(groups),
    )


def _require_object(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise CatalogError(f"{where}: expected an object")
    return value


def _optional_str(value: dict[str, Any], key: str, where: str, default: str) -> str:
    """Read an optional string field, rejecting null and other types."""
    if key not in value:
        return default
    if not isinstance(value[key], str):
        raise CatalogError(f"{where}: '{key}' must be a string, got {value[key]!r}")
    return value[key]


def _parse_gate(value: Any, where: str) -> ApplicabilityGate:
    """Parse an ``appliesTo`` predicate (object or bare process name)."""
    if isinstance(value, str):
        value = {"process": value}
    where = f"{where}.appliesTo"
    value = _require_object(value, where)
    process = _optional_str(value, "process", where, "")
    expect = _optional_str(value, "expect", where, "exists")
    try:
        return ApplicabilityGate(process=process, expect=expect)
    except ValueError as e:
        raise CatalogError(f"{where}: {e}") from e


def _parse_group(value: Any, where: str) -> RuleGroup:
    value = _require_object(value, where)
    if "appliesTo" not in value:
        raise CatalogError(f"{where}: missing 'appliesTo'")

    gate = _parse_gate(value["appliesTo"], where)
    raw_rules = value.get("rules", [])
    if not isinstance(raw_rules, list):
        raise CatalogError(f"{where}: 'rules' must be a list")

    rules = [
        _parse_rule(raw_rule, f"{where}.rules[{index}]")
        for index, raw_rule in enumerate(raw_rules)
    ]

    group_id = _optional_str(value, "id", where, gate.process)
    title = _optional_str(value, "title", where, group_id)
    try:
        return RuleGroup(
            id=group_id,
            title=title or group_id,
            gate=gate,
            rules=tuple(rules),
        )
    except ValueError as e:
        raise CatalogError(f"{where}: {e}") from e


def _group_flat_rules(raw_rules: list[Any], catalog_id: str, source: str) -> list[RuleGroup]:
    grouped: dict[ApplicabilityGate, list[Rule]] = {}
    for index, raw_rule in enumerate(raw_rules):
        where = f"{source}: rules[{index}]"
        raw_rule = _require_object(raw_rule, where)
        if "appliesTo" not in raw_rule:
            raise CatalogError(f"{where}: missing 'appliesTo'")
        gate = _parse_gate(raw_rule["appliesTo"], where)
        grouped.setdefault(gate, []).append(_parse_rule(raw_rule, where))

    groups: list[RuleGroup] = []
    for gate, rules in grouped.items():
        suffix = "" if gate.expect == "exists" else f"-{gate.expect}"
        try:
            groups.append(RuleGroup(
                id=f"{catalog_id}:{gate.process}{suffix}",
                title=f"Rules for {gate.describe()}",
                gate=gate,
                rules=tuple(rules),
            ))
        except ValueError as e:
            raise CatalogError(f"{source}: {e}") from e
    return groups


def _parse_rule(value: Any, where: str) -> Rule:
    value = _require_object(value, where)

    rule_id = value.get("id")
    if not isinstance(rule_id, str) or not rule_id:
        raise CatalogError(f"{where}: rule 'id' must be a non-empty string")
    where = f"{where} ({rule_id})"

    has_all = "assertions" in value
    has_one_of = "oneOf" in value
    if has_all == has_one_of:
        raise CatalogError(f"{where}: exactly one of 'assertions' or 'oneOf' is required")

    default_fact = value.get("fact")
    if default_fact is not None and not isinstance(default_fact, str):
        raise CatalogError(f"{where}: 'fact' must be a string")

    if has_all:
        unit: Any = _parse_assertion_list(value["assertions"], f"{where}.assertions", default_fact)
    else:
        alternatives = value["oneOf"]
        if not isinstance(alternatives, list) or not alternatives:
            raise CatalogError(f"{where}.oneOf: expected a non-empty list of lists")
        try:
            unit = AlternativeGroup(tuple(
                _parse_assertion_list(alternative, f"{where}.oneOf[{index}]", default_fact)
                for index, alternative in enumerate(alternatives)
            ))
        except ValueError as e:
            raise CatalogError(f"{where}.oneOf: {e}") from e

    title = _optional_str(value, "title", where, "")
    metadata = value.get("metadata", {})
    if not isinstance(metadata, dict):
        raise CatalogError(f"{where}: 'metadata' must be an object")

    try:
        return Rule(
            id=rule_id,
            title=title,
            unit=unit,
            severity_weight=value.get("severityWeight", 1.0),
            metadata=metadata,
        )
    except ValueError as e:
        raise CatalogError(f"{where}: {e}") from e


def _parse_assertion_list(
    value: Any,
    where: str,
    default_fact: Optional[str],
) -> tuple[Assertion, ...]:
    if not isinstance(value, list) or not value:
        raise CatalogError(f"{where}: expected a non-empty list of assertions")
    return tuple(
        _parse_assertion(raw, f"{where}[{index}]", default_fact)
        for index, raw in enumerate(value)
    )


def _parse_assertion(value: Any, where: str, default_fact: Optional[str]) -> Assertion:
    value = dict(_require_object(value, where))

    kind = value.pop("type", None)
    assertion_class = assertion_type(kind) if isinstance(kind, str) else None
    if assertion_class is None:
        raise CatalogError(
            f"{where}: unknown assertion type {kind!r}. "
            f"Expected one of: {', '.join(assertion_kinds())}"
        )

    if default_fact is not None:
        value.setdefault("fact", default_fact)

    accepted = {f.name for f in fields(assertion_class)}
    unknown = sorted(set(value) - accepted)
    if unknown:
        raise CatalogError(
            f"{where}: unknown key(s) for '{kind}' assertion: {', '.join(unknown)}"
        )

    try:
        return assertion_class(**value)
    except (TypeError, ValueError) as e:
        raise CatalogError(f"{where}: invalid '{kind}' assertion: {e}") from e
