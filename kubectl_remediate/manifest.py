import copy
import logging
import os
from typing import Any

import yaml

from kubectl_remediate.errors import ConfigError

logger = logging.getLogger("kubectl_remediate.manifest")

DEFAULT_MANIFEST = os.path.join(os.path.dirname(__file__), "manifests", "default.yaml")

# ----------------------------
# Template loading
# ----------------------------


def parse_documents(content: str) -> list[dict[str, Any]]:
    """
    Split a multi-document YAML string, dropping empty documents.
    """
    docs = []
    for doc in yaml.safe_load_all(content):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ConfigError("Each manifest document must be a mapping")
        docs.append(doc)
    return docs


def render_documents(docs: list[dict[str, Any]]) -> str:
    return yaml.safe_dump_all(docs, sort_keys=False, explicit_start=True)


class ManifestTemplate:
    """
    A declarative object set remediation regenerates objects from.
    Only the fields remediation owns are rewritten; everything else is
    passed through untouched.
    """

    def __init__(self, documents: list[dict[str, Any]], source: str = "<inline>"):
        for doc in documents:
            if "kind" not in doc or not doc.get("metadata", {}).get("name"):
                raise ConfigError(f"{source}: manifest document without kind/name")
        self.documents = documents
        self.source = source

    @classmethod
    def load(cls, path: str | None = None) -> "ManifestTemplate":
        path = path or DEFAULT_MANIFEST
        try:
            with open(path, encoding="utf-8") as f:
                docs = parse_documents(f.read())
        except OSError as e:
            raise ConfigError(f"Cannot read manifest template {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in manifest template {path}: {e}") from e
        logger.debug("Loaded %d manifest documents from %s", len(docs), path)
        return cls(docs, source=path)

    @classmethod
    def empty(cls) -> "ManifestTemplate":
        return cls([], source="<empty>")

    def find(self, kind: str, name: str, namespace: str) -> dict[str, Any] | None:
        """
        Return a deep copy of the matching document, or None.
        A document without namespace matches any namespace.
        """
        for doc in self.documents:
            meta = doc.get("metadata", {})
            if doc.get("kind") != kind or meta.get("name") != name:
                continue
            if meta.get("namespace", namespace) != namespace:
                continue
            found = copy.deepcopy(doc)
            found.setdefault("metadata", {})["namespace"] = namespace
            return found
        return None


# ----------------------------
# Field rewrites
# ----------------------------


def pvc_document(
    name: str,
    namespace: str,
    storage_class: str,
    access_modes: list[str],
    storage: str,
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "accessModes": list(access_modes),
            "resources": {"requests": {"storage": storage}},
            "storageClassName": storage_class,
        },
    }


def set_storage_class(doc: dict[str, Any], storage_class: str) -> dict[str, Any]:
    doc.setdefault("spec", {})["storageClassName"] = storage_class
    return doc


def template_containers(doc: dict[str, Any]) -> list[dict[str, Any]]:
    return (
        doc.setdefault("spec", {})
        .setdefault("template", {})
        .setdefault("spec", {})
        .setdefault("containers", [])
    )


def set_container_request(
    doc: dict[str, Any], container: str, resource: str, quantity: str
) -> bool:
    """
    Rewrite one container's resource request in a workload document.
    Returns False when the container is not in the template.
    """
    for c in template_containers(doc):
        if c.get("name") != container:
            continue
        resources = c.setdefault("resources", {}) or {}
        c["resources"] = resources
        resources.setdefault("requests", {})[resource] = quantity
        return True
    return False
