from kubectl_remediate.model import ClusterSnapshot


def build_relations(snapshot: ClusterSnapshot) -> dict[str, list[str]]:
    """
    Build a directed relationship graph between objects in the snapshot.
    """
    relations: dict[str, list[str]] = {}

    for pod in snapshot.pods:
        pod_id = f"pod:{pod.name}"
        relations.setdefault(pod_id, [])

        # PVC → Pod
        for claim in pod.claims:
            relations.setdefault(f"pvc:{claim}", []).append(pod_id)

        # Deployment → Pod
        if pod.owner:
            relations.setdefault(f"deployment:{pod.owner}", []).append(pod_id)

    return relations


def claim_consumers(snapshot: ClusterSnapshot, pvc_name: str) -> list[dict[str, int | str]]:
    """
    Deployments whose Pods mount the given PVC, with their current replicas.
    Sorted by name, each listed once.
    """
    relations = build_relations(snapshot)
    pods = set(relations.get(f"pvc:{pvc_name}", []))

    consumers: dict[str, int] = {}
    for key, targets in relations.items():
        if not key.startswith("deployment:") or not pods.intersection(targets):
            continue
        name = key.split(":", 1)[1]
        deploy = snapshot.deployment(name, snapshot.namespace)
        consumers[name] = deploy.replicas if deploy else 1

    return [{"name": name, "replicas": consumers[name]} for name in sorted(consumers)]
