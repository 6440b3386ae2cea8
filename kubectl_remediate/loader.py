import glob
import importlib.util
import os
from typing import Any

import yaml

from kubectl_remediate.model import SEVERITIES, ClusterSnapshot, Finding, ObjectRef
from kubectl_remediate.rules.base_rule import DiagnosticRule

RULES_DIR = os.path.join(os.path.dirname(__file__), "rules")

# Names a YAML rule condition may use
_SAFE_BUILTINS = {"any": any, "all": all, "len": len, "sum": sum, "min": min, "max": max}

# ----------------------------
# Dynamic Rule Loader
# ----------------------------


class YamlDiagnosticRule(DiagnosticRule):
    def __init__(self, spec: dict[str, Any]):
        self.name = spec["name"]
        self.category = spec.get("category", "Generic")
        self.severity = spec.get("severity", "info")
        self.priority = spec.get("priority", 100)
        self.requires = spec.get("requires", {"snapshot": []})
        self.spec = spec

    def matches(self, snapshot: ClusterSnapshot) -> bool:
        env = {"__builtins__": _SAFE_BUILTINS, "snapshot": snapshot}
        return bool(eval(self.spec.get("if", "False"), env))

    def _objects(self, snapshot: ClusterSnapshot) -> tuple[ObjectRef, ...]:
        source = self.spec.get("then", {}).get("objects_from")
        if source == "nodes":
            return tuple(ObjectRef("Node", n.name) for n in snapshot.nodes)
        if source == "pvcs":
            return tuple(p.ref for p in snapshot.pending_pvcs)
        if source == "pods":
            return tuple(p.ref for p in snapshot.pending_pods)
        return ()

    def explain(self, snapshot: ClusterSnapshot) -> list[Finding]:
        then = self.spec.get("then", {})
        return [
            Finding(
                rule_id=self.name,
                severity=self.severity,
                affected_objects=self._objects(snapshot),
                message=then.get("message", self.name),
                suggested_checks=tuple(then.get("suggested_checks", [])),
            )
        ]


def build_yaml_rules(spec: Any) -> list[DiagnosticRule]:
    """
    Accepts either a single dict or a list of dicts from YAML file.
    Returns a list of YamlDiagnosticRule instances.
    """
    rules: list[DiagnosticRule] = []
    if not spec:
        return rules
    if isinstance(spec, dict):
        rules.append(YamlDiagnosticRule(spec))
    elif isinstance(spec, list):
        for item in spec:
            if not isinstance(item, dict):
                raise ValueError("Each YAML rule must be a dict")
            rules.append(YamlDiagnosticRule(item))
    else:
        raise ValueError("YAML content must be a dict or a list of dicts")
    return rules


def validate_rule(rule: DiagnosticRule):
    required_fields = ["name", "category", "severity", "priority", "requires"]
    for field in required_fields:
        if not hasattr(rule, field):
            raise ValueError(f"Rule {rule} missing required field '{field}'")

    if not isinstance(rule.name, str) or not rule.name:
        raise ValueError("Rule.name must be a non-empty string")
    if not isinstance(rule.category, str) or not rule.category:
        raise ValueError(f"Rule {rule.name}.category must be a non-empty string")
    if rule.severity not in SEVERITIES:
        raise ValueError(
            f"Rule {rule.name}.severity must be one of {', '.join(SEVERITIES)}"
        )
    if not isinstance(rule.priority, int):
        raise ValueError(f"Rule {rule.name}.priority must be an integer")
    if not (0 <= rule.priority <= 1000):
        raise ValueError(f"Rule {rule.name}.priority must be between 0 and 1000")
    if not isinstance(rule.requires, dict):
        raise ValueError(f"Rule {rule.name}.requires must be a dict")

    unknown = set(rule.requires) - {"snapshot"}
    if unknown:
        raise ValueError(
            f"Rule {rule.name}.requires has invalid keys: {sorted(unknown)}"
        )
    sections = rule.requires.get("snapshot", [])
    if not isinstance(sections, list):
        raise ValueError(f"Rule {rule.name}.requires.snapshot must be a list")
    missing = [s for s in sections if s not in ClusterSnapshot.__dataclass_fields__]
    if missing:
        raise ValueError(
            f"Rule {rule.name}.requires unknown snapshot sections: {missing}"
        )


def load_rules(rule_folder=None) -> list[DiagnosticRule]:
    if rule_folder is None:
        rule_folder = RULES_DIR

    rules: list[DiagnosticRule] = []

    # ---- Python rules ----
    for file in sorted(glob.glob(os.path.join(rule_folder, "**", "*.py"), recursive=True)):
        if os.path.basename(file) == "base_rule.py":
            continue
        module_name = "kubectl_remediate_rule_" + os.path.splitext(os.path.basename(file))[0]
        spec = importlib.util.spec_from_file_location(module_name, file)
        if spec is None or spec.loader is None:
            continue
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        for attr in dir(module):
            cls = getattr(module, attr)
            if (
                isinstance(cls, type)
                and issubclass(cls, DiagnosticRule)
                and cls is not DiagnosticRule
                and cls.__module__ == module_name
            ):
                rules.append(cls())

    # ---- YAML rules ----
    for yfile in sorted(glob.glob(os.path.join(rule_folder, "**", "*.yaml"), recursive=True)):
        with open(yfile, encoding="utf-8") as f:
            spec = yaml.safe_load(f)
            if spec:  # skip empty YAML files
                rules.extend(build_yaml_rules(spec))  # support multiple rules per file

    # ---- CONTRACT VALIDATION ----
    seen: set[str] = set()
    for rule in rules:
        validate_rule(rule)
        if rule.name in seen:
            raise ValueError(f"Duplicate rule name '{rule.name}'")
        seen.add(rule.name)

    return rules


def load_plugins(plugin_folder=None) -> list[DiagnosticRule]:
    if plugin_folder is None or not os.path.exists(plugin_folder):
        return []
    return load_rules(plugin_folder)
