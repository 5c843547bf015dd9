"""
KubeScan - Catalog Loading Tests

Validates JSON rule-catalog loading, grouping and structural errors.
"""

import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Add project root to import path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from kubescan.core.assertion import (
    FlagListMembership,
    ManualReview,
    NumericThreshold,
    RegexPresence,
)
from kubescan.core.catalog import (
    catalog_exists,
    list_available_catalogs,
    load_catalog,
    parse_catalog,
)
from kubescan.core.errors import CatalogError
from kubescan.core.gate import ApplicabilityGate

FIXTURES = Path(__file__).parent / "fixtures"


def single_rule_catalog(**rule: Any) -> dict[str, Any]:
    base = {"id": "r1", "title": "Rule one", "assertions": [{"type": "regex", "pattern": "x"}]}
    base.update(rule)
    return {
        "groups": [
            {"id": "g", "appliesTo": {"process": "kube-apiserver"}, "rules": [base]}
        ]
    }


class TestLoadCatalog:
    """Tests for loading catalogs from files."""

    def test_load_fixture(self) -> None:
        catalog = load_catalog(FIXTURES / "kubernetes_master.json")

        assert catalog.id == "cis-kubernetes-master"
        assert [group.id for group in catalog.groups] == ["1.1", "1.3"]
        assert len(catalog) == 9
        assert catalog.rule_ids[0] == "cis-kubernetes-benchmark-1.1.1"

    def test_gates(self) -> None:
        catalog = load_catalog(FIXTURES / "kubernetes_master.json")
        assert catalog.groups[0].gate == ApplicabilityGate("kube-apiserver")
        # Bare string form of appliesTo
        assert catalog.groups[1].gate == ApplicabilityGate("kube-controller-manager")

    def test_assertion_types(self) -> None:
        catalog = load_catalog(FIXTURES / "kubernetes_master.json")

        maxage = catalog.get_rule("cis-kubernetes-benchmark-1.1.17")
        assert isinstance(maxage.unit[0], RegexPresence)
        assert maxage.unit[1] == NumericThreshold(
            pattern=r"--audit-log-maxage=(\d+)", comparator=">=", threshold=30
        )

        secure_port = catalog.get_rule("cis-kubernetes-benchmark-1.1.8")
        assert secure_port.is_one_of
        assert len(secure_port.unit) == 2

        admission = catalog.get_rule("cis-kubernetes-benchmark-1.1.11")
        assert isinstance(admission.unit[0], FlagListMembership)
        assert admission.unit[0].expect == "excludes"

        manual = catalog.get_rule("cis-kubernetes-benchmark-1.3.6")
        assert isinstance(manual.unit[0], ManualReview)
        assert manual.informational

    def test_metadata_passed_through(self) -> None:
        catalog = load_catalog(FIXTURES / "kubernetes_master.json")
        rule = catalog.get_rule("cis-kubernetes-benchmark-1.1.1")
        assert rule.metadata["tags"]["cis_rid"] == "1.1.1"
        assert rule.metadata["references"][0]["title"] == "kube-apiserver"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogError, match="cannot load catalog"):
            load_catalog(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CatalogError):
            load_catalog(path)

    def test_default_id_from_file_name(self, tmp_path: Path) -> None:
        path = tmp_path / "my-benchmark.json"
        path.write_text(json.dumps(single_rule_catalog()), encoding="utf-8")
        assert load_catalog(path).id == "my-benchmark"


class TestCatalogDirectory:
    """Tests for catalog discovery in a directory."""

    def test_list_and_exists(self, tmp_path: Path) -> None:
        (tmp_path / "b.json").write_text("{}", encoding="utf-8")
        (tmp_path / "a.json").write_text("{}", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("", encoding="utf-8")

        assert list_available_catalogs(tmp_path) == ["a", "b"]
        assert catalog_exists(tmp_path, "a") is True
        assert catalog_exists(tmp_path, "c") is False
        assert catalog_exists(tmp_path, "") is False

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert list_available_catalogs(tmp_path / "nope") == []


class TestParseCatalog:
    """Tests for catalog structure validation."""

    def test_flat_rules_grouped_by_gate(self) -> None:
        data = {
            "id": "flat",
            "rules": [
                {"id": "a", "title": "A", "appliesTo": "kube-apiserver",
                 "assertions": [{"type": "regex", "pattern": "x"}]},
                {"id": "b", "title": "B", "appliesTo": "etcd",
                 "assertions": [{"type": "regex", "pattern": "x"}]},
                {"id": "c", "title": "C", "appliesTo": {"process": "kube-apiserver"},
                 "assertions": [{"type": "regex", "pattern": "x"}]},
            ],
        }
        catalog = parse_catalog(data)

        assert [group.id for group in catalog.groups] == ["flat:kube-apiserver", "flat:etcd"]
        assert [rule.id for rule in catalog.groups[0].rules] == ["a", "c"]
        assert catalog.rule_ids == ["a", "c", "b"]

    def test_rule_fact_default(self) -> None:
        """A rule-level fact applies to assertions that do not name one."""
        data = single_rule_catalog(
            fact="etcd",
            assertions=[
                {"type": "regex", "pattern": "x"},
                {"type": "regex", "pattern": "y", "fact": "kube-apiserver"},
            ],
        )
        rule = parse_catalog(data).rules[0]
        assert [a.fact for a in rule.unit] == ["etcd", "kube-apiserver"]

    def test_malformed_regex_is_not_a_catalog_error(self) -> None:
        """Broken patterns load and surface as errored rules at run time."""
        data = single_rule_catalog(assertions=[{"type": "regex", "pattern": "(unclosed"}])
        assert len(parse_catalog(data)) == 1

    @pytest.mark.parametrize(
        "rule,match",
        [
            ({"assertions": [{"type": "glob", "pattern": "x"}]}, "unknown assertion type"),
            ({"assertions": [{"pattern": "x"}]}, "unknown assertion type"),
            ({"assertions": [{"type": "regex", "pattern": "x", "flags": "i"}]}, "unknown key"),
            ({"assertions": [{"type": "regex"}]}, "invalid 'regex' assertion"),
            ({"assertions": [{"type": "threshold", "pattern": "(\\d+)", "comparator": "=>",
                              "threshold": 1}]}, "Unknown comparator"),
            ({"assertions": []}, "non-empty list"),
            ({"oneOf": [[{"type": "regex", "pattern": "x"}]]}, "exactly one of"),
            ({"oneOf": []}, "exactly one of"),
            ({"severityWeight": 2}, "between 0.0 and 1.0"),
            ({"severityWeight": "high"}, "must be a number"),
            ({"metadata": ["tag"]}, "'metadata' must be an object"),
            ({"title": ""}, "title cannot be empty"),
            ({"id": ""}, "non-empty string"),
        ],
    )
    def test_invalid_rules(self, rule: dict[str, Any], match: str) -> None:
        with pytest.raises(CatalogError, match=match):
            parse_catalog(single_rule_catalog(**rule))

    @pytest.mark.parametrize(
        "applies_to",
        [{"process": None}, {"process": 42}, {"process": "etcd", "expect": None}],
    )
    def test_non_string_gate_fields(self, applies_to: dict[str, Any]) -> None:
        """Null or numeric gate fields are rejected, not stringified."""
        data = single_rule_catalog()
        data["groups"][0]["appliesTo"] = applies_to
        with pytest.raises(CatalogError, match="must be a string"):
            parse_catalog(data)

    def test_null_titles_rejected(self) -> None:
        with pytest.raises(CatalogError, match="'title' must be a string"):
            parse_catalog(single_rule_catalog(title=None))

        data = single_rule_catalog()
        data["groups"][0]["title"] = None
        with pytest.raises(CatalogError, match="'title' must be a string"):
            parse_catalog(data)

        data = single_rule_catalog()
        data["id"] = 7
        with pytest.raises(CatalogError, match="'id' must be a string"):
            parse_catalog(data)

    @pytest.mark.parametrize(
        "assertion",
        [
            {"type": "manual", "message": None},
            {"type": "flag", "flag": 1},
            {"type": "flag", "flag": "profiling", "value": False},
            {"type": "flag-list", "flag": "admission-control", "item": ["AlwaysAdmit"]},
        ],
    )
    def test_non_string_assertion_fields(self, assertion: dict[str, Any]) -> None:
        with pytest.raises(CatalogError, match="must be a string"):
            parse_catalog(single_rule_catalog(assertions=[assertion]))

    def test_empty_one_of(self) -> None:
        data = single_rule_catalog()
        raw_rule = data["groups"][0]["rules"][0]
        del raw_rule["assertions"]
        raw_rule["oneOf"] = []
        with pytest.raises(CatalogError, match="non-empty list of lists"):
            parse_catalog(data)

    def test_duplicate_rule_ids_across_groups(self) -> None:
        data = single_rule_catalog()
        second = dict(data["groups"][0], id="g2")
        data["groups"].append(second)
        with pytest.raises(CatalogError, match="defined more than once"):
            parse_catalog(data)

    def test_missing_applies_to(self) -> None:
        data = single_rule_catalog()
        del data["groups"][0]["appliesTo"]
        with pytest.raises(CatalogError, match="missing 'appliesTo'"):
            parse_catalog(data)

    def test_empty_catalog(self) -> None:
        with pytest.raises(CatalogError, match="defines no rules"):
            parse_catalog({"id": "empty"})

    def test_not_an_object(self) -> None:
        with pytest.raises(CatalogError, match="must be a JSON object"):
            parse_catalog([])

    def test_catalog_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_catalog([])
