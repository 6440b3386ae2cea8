import json
from typing import Any

import yaml

from kubectl_remediate.actions import RemediationPlan
from kubectl_remediate.executor import ExecutionReport
from kubectl_remediate.model import Finding

SEVERITY_ORDER = {"blocking": 0, "warning": 1, "info": 2}

# ----------------------------
# Structured results
# ----------------------------


def diagnosis_result(namespace: str, findings: list[Finding]) -> dict[str, Any]:
    return {
        "namespace": namespace,
        "blocking": any(f.blocking for f in findings),
        "findings": [f.to_dict() for f in findings],
    }


def remediation_result(
    namespace: str,
    findings: list[Finding],
    plan: RemediationPlan,
    report: ExecutionReport | None = None,
) -> dict[str, Any]:
    result = diagnosis_result(namespace, findings)
    result["dry_run"] = report is None
    result["plan"] = plan.to_dict()
    result["report"] = report.to_dict() if report is not None else None
    return result


# ----------------------------
# Output formatting
# ----------------------------


def _emit_structured(result: dict[str, Any], fmt: str) -> bool:
    if fmt == "json":
        print(json.dumps(result, indent=2))
        return True
    if fmt == "yaml":
        print(yaml.safe_dump(result, sort_keys=False))
        return True
    return False


def _print_findings(findings: list[dict[str, Any]]) -> None:
    if not findings:
        print("\nNo findings.")
        return

    # Most severe first, stable within a severity
    ordered = sorted(findings, key=lambda f: SEVERITY_ORDER.get(f["severity"], 99))
    print("\nFindings:")
    for f in ordered:
        print(f"  [{f['severity'].upper()}] {f['rule']}: {f['message']}")
        for obj in f.get("objects", []):
            print(f"      object: {obj}")
        for check in sorted(f.get("suggested_checks", [])):
            print(f"      check: {check}")


def output_diagnosis(result: dict[str, Any], fmt: str = "text") -> None:
    """
    Prints findings for one namespace.
    - Blocking findings first, then warnings, then info
    - Suggested checks sorted for deterministic output
    """
    if _emit_structured(result, fmt):
        return

    print(f"Namespace: {result['namespace']}")
    print(f"Blocking: {'yes' if result['blocking'] else 'no'}")
    _print_findings(result["findings"])


def output_remediation(result: dict[str, Any], fmt: str = "text") -> None:
    if _emit_structured(result, fmt):
        return

    output_diagnosis(result, fmt)

    plan = result["plan"]
    print(f"\nPlan ({len(plan['actions'])} actions):")
    for i, action in enumerate(plan["actions"], 1):
        if action["action"] == "apply":
            waits = ", ".join(action["wait_for"])
            suffix = f" (wait for {action['wait_phase']}: {waits})" if waits else ""
            if action["wait_ready"]:
                suffix += f" (wait for ready: {', '.join(action['wait_ready'])})"
            print(f"  {i}. apply {', '.join(action['objects'])}{suffix}")
            if result["dry_run"]:
                for line in action["content"].rstrip().splitlines():
                    print(f"       | {line}")
        elif action["action"] == "scale":
            ready = " (wait for ready)" if action["wait_ready"] else ""
            print(f"  {i}. scale {action['object']} to {action['replicas']}{ready}")
        else:
            print(f"  {i}. {action['action']} {action['object']}")

    if plan["errors"]:
        print("\nPlanning errors:")
        for e in plan["errors"]:
            objects = ", ".join(e["objects"])
            print(f"  - {e['error']} ({e['rule']}: {objects}): {e['message']}")

    report = result.get("report")
    if report is None:
        print("\nDry run: no changes made.")
        return

    print("\nExecution:")
    for r in report["results"]:
        line = f"  [{r['status']}] {r['action']}"
        if r["error"]:
            line += f": {r['error']}"
        elif r["detail"]:
            line += f" ({r['detail']})"
        print(line)
