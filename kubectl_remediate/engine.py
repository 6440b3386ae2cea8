import logging

from kubectl_remediate.loader import load_plugins, load_rules
from kubectl_remediate.model import SEVERITIES, ClusterSnapshot, Finding
from kubectl_remediate.rules.base_rule import DiagnosticRule

logger = logging.getLogger("kubectl_remediate.engine")

_DEFAULT_RULES = None


def get_default_rules(plugin_folder: str | None = None) -> list[DiagnosticRule]:
    """
    Bundled rules (loaded once per process) plus any rules found in
    plugin_folder.
    """
    global _DEFAULT_RULES
    if _DEFAULT_RULES is None:
        _DEFAULT_RULES = load_rules()
    plugins = load_plugins(plugin_folder)
    if plugins:
        logger.info("Loaded %d plugin rule(s) from %s", len(plugins), plugin_folder)
    return _DEFAULT_RULES + plugins


def rule_order(rule: DiagnosticRule) -> tuple[int, str]:
    return getattr(rule, "priority", 100), rule.name


def has_blocking(findings: list[Finding]) -> bool:
    return any(f.blocking for f in findings)


class RuleEngine:
    """
    Evaluates every rule against one snapshot, in declared order.

    Rules are independent pure functions of the snapshot; order only
    affects presentation.
    """

    def __init__(
        self,
        rules: list[DiagnosticRule] | None = None,
        enabled_categories: list[str] | None = None,
        disabled_categories: list[str] | None = None,
        plugin_folder: str | None = None,
    ):
        if rules is None:
            rules = get_default_rules(plugin_folder)

        seen: set[str] = set()
        for rule in rules:
            if rule.name in seen:
                raise ValueError(f"Duplicate rule name '{rule.name}'")
            seen.add(rule.name)

        self.rules = sorted(rules, key=rule_order)
        self.enabled_categories = enabled_categories
        self.disabled_categories = disabled_categories

    def _selected(self) -> list[DiagnosticRule]:
        selected = []
        for rule in self.rules:
            category = getattr(rule, "category", None)
            if self.enabled_categories and category not in self.enabled_categories:
                continue
            if self.disabled_categories and category in self.disabled_categories:
                continue
            selected.append(rule)
        return selected

    def evaluate(self, snapshot: ClusterSnapshot) -> list[Finding]:
        findings: list[Finding] = []

        for rule in self._selected():
            if not rule.matches(snapshot):
                logger.debug("Rule '%s' did not match", rule.name)
                continue

            produced = rule.explain(snapshot)

            # ---- explain() contract enforcement ----
            if not isinstance(produced, list):
                raise TypeError(f"{rule.name}.explain() must return a list")
            for finding in produced:
                if not isinstance(finding, Finding):
                    raise TypeError(f"{rule.name}.explain() must return Finding objects")
                if finding.rule_id != rule.name:
                    raise ValueError(
                        f"{rule.name}.explain() produced a finding for '{finding.rule_id}'"
                    )
                if finding.severity not in SEVERITIES:
                    raise ValueError(f"{rule.name}: invalid severity '{finding.severity}'")
                if finding.severity != rule.severity:
                    raise ValueError(
                        f"{rule.name}: finding severity '{finding.severity}' "
                        f"does not match rule severity '{rule.severity}'"
                    )

            logger.debug("Rule '%s' matched (%d findings)", rule.name, len(produced))
            findings.extend(produced)

        # Deduplicate, keeping declared order
        return list(dict.fromkeys(findings))
