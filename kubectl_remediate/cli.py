import argparse
import json
import logging
import sys
from typing import Any, Callable

from kubectl_remediate.config import (
    Settings,
    load_settings,
    setup_logging,
    validate_settings,
)
from kubectl_remediate.controlplane import ControlPlane, KubernetesControlPlane
from kubectl_remediate.engine import RuleEngine, has_blocking
from kubectl_remediate.errors import (
    ClusterUnreachable,
    ConfigError,
    InspectionFailed,
)
from kubectl_remediate.executor import Executor
from kubectl_remediate.inspector import ClusterInspector
from kubectl_remediate.manifest import ManifestTemplate
from kubectl_remediate.model import ClusterSnapshot, load_snapshot
from kubectl_remediate.output import (
    diagnosis_result,
    output_diagnosis,
    output_remediation,
    remediation_result,
)
from kubectl_remediate.planner import RemediationPlanner

logger = logging.getLogger("kubectl_remediate.cli")

EXIT_OK = 0
EXIT_FINDINGS = 1  # blocking findings, or partial remediation failure
EXIT_FATAL = 2  # cluster unreachable, inspection or configuration failure


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="YAML settings file")
    common.add_argument("--kubeconfig", help="Path to kubeconfig")
    common.add_argument("--context", help="kubeconfig context to use")
    common.add_argument("--namespace", "-n", help="Namespace to inspect")
    common.add_argument("--verbose", action="store_true")

    rules = argparse.ArgumentParser(add_help=False)
    rules.add_argument(
        "--snapshot", help="Read a snapshot JSON file instead of a live cluster"
    )
    rules.add_argument(
        "--format",
        choices=["text", "json", "yaml"],
        default="text",
        help="Output format (text, json, yaml)",
    )
    rules.add_argument("--enable-categories", nargs="*", default=None)
    rules.add_argument("--disable-categories", nargs="*", default=None)
    rules.add_argument("--plugin-dir", help="Extra rule directory (Python or YAML rules)")

    parser = argparse.ArgumentParser(
        prog="kubectl-remediate",
        description="Diagnose and remediate stuck PVCs and unschedulable Pods",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "diagnose", parents=[common, rules], help="Report findings for a namespace"
    )

    remediate = sub.add_parser(
        "remediate", parents=[common, rules], help="Plan and apply fixes"
    )
    remediate.add_argument("--dry-run", action="store_true", help="Print the plan only")
    remediate.add_argument("--manifest", help="Manifest template to regenerate from")
    remediate.add_argument(
        "--preferred-class",
        action="append",
        default=None,
        help="Preferred StorageClass, repeatable, in order of preference",
    )
    remediate.add_argument(
        "--deadline", type=float, default=None, help="Overall time budget in seconds"
    )

    snapshot = sub.add_parser(
        "snapshot", parents=[common], help="Dump the live snapshot as JSON"
    )
    snapshot.add_argument("--output", "-o", help="Write to FILE instead of stdout")

    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config).merged(
        kubeconfig=args.kubeconfig,
        context=args.context,
        namespace=args.namespace,
        manifest_path=getattr(args, "manifest", None),
        preferred_storage_classes=getattr(args, "preferred_class", None),
        plugin_dir=getattr(args, "plugin_dir", None),
        log_level="DEBUG" if args.verbose else None,
    )
    validate_settings(settings)
    return settings


def build_engine(args: argparse.Namespace, settings: Settings) -> RuleEngine:
    try:
        return RuleEngine(
            enabled_categories=args.enable_categories,
            disabled_categories=args.disable_categories,
            plugin_folder=settings.plugin_dir,
        )
    except ValueError as e:
        if not settings.plugin_dir:
            raise
        raise ConfigError(f"Invalid rule in {settings.plugin_dir}: {e}") from e


def read_snapshot(path: str) -> ClusterSnapshot:
    try:
        return load_snapshot(path)
    except OSError as e:
        raise ConfigError(f"Cannot read snapshot {path}: {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise ConfigError(f"Invalid snapshot file {path}: {e}") from e


def run(
    argv: list[str] | None = None,
    control_plane_factory: Callable[[Settings], ControlPlane] = (
        KubernetesControlPlane.from_settings
    ),
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "remediate" and args.snapshot and not args.dry_run:
        parser.error("--snapshot requires --dry-run")

    try:
        settings = resolve_settings(args)
    except ConfigError as e:
        setup_logging()
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_FATAL
    setup_logging(settings.log_level)

    control_plane: ControlPlane | None = None
    try:
        if getattr(args, "snapshot", None):
            snapshot = read_snapshot(args.snapshot)
            logger.info("Loaded snapshot of '%s' from %s", snapshot.namespace, args.snapshot)
        else:
            control_plane = control_plane_factory(settings)
            snapshot = ClusterInspector(control_plane).snapshot(settings.namespace)

        if args.command == "snapshot":
            return _dump_snapshot(snapshot, args.output)

        engine = build_engine(args, settings)
        findings = engine.evaluate(snapshot)

        if args.command == "diagnose":
            output_diagnosis(diagnosis_result(snapshot.namespace, findings), args.format)
            return EXIT_FINDINGS if has_blocking(findings) else EXIT_OK

        template = ManifestTemplate.load(settings.manifest_path)
        plan = RemediationPlanner.from_settings(snapshot, settings, template).plan(findings)

        report = None
        if not args.dry_run:
            report = Executor(control_plane).apply(plan.actions, deadline=args.deadline)

        output_remediation(
            remediation_result(snapshot.namespace, findings, plan, report), args.format
        )
    except (ClusterUnreachable, InspectionFailed, ConfigError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_FATAL

    if report is not None and report.unreachable:
        return EXIT_FATAL
    if plan.errors or (report is not None and not report.succeeded):
        return EXIT_FINDINGS
    return EXIT_OK


def _dump_snapshot(snapshot: ClusterSnapshot, path: str | None) -> int:
    data: dict[str, Any] = snapshot.to_dict()
    text = json.dumps(data, indent=2)
    if path:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(text + "\n")
        except OSError as e:
            raise ConfigError(f"Cannot write snapshot {path}: {e}") from e
        logger.info("Snapshot written to %s", path)
    else:
        print(text)
    return EXIT_OK


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
