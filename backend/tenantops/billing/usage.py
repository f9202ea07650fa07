from dataclasses import asdict, dataclass

from tenantops.billing.quantities import parse_cpu, parse_gib
from tenantops.cluster.client import KubernetesClusterClient


@dataclass(frozen=True)
class UsageSnapshot:
    namespace: str
    cpu_cores: float
    memory_gib: float
    storage_gib: float
    pods: int
    pvcs: int

    def as_dict(self) -> dict:
        return asdict(self)


def _requests(obj: dict, *path: str) -> dict:
    node = obj
    for key in path:
        if not isinstance(node, dict):
            return {}
        node = node.get(key) or {}
    return node if isinstance(node, dict) else {}


def take_snapshot(cluster: KubernetesClusterClient, namespace: str) -> UsageSnapshot:
    pods = cluster.list_pods(namespace)
    claims = cluster.list_persistent_volume_claims(namespace)

    cpu = 0.0
    memory = 0.0
    for pod in pods:
        for container in _requests(pod, "spec").get("containers") or []:
            requests = _requests(container, "resources", "requests")
            cpu += parse_cpu(requests.get("cpu"))
            memory += parse_gib(requests.get("memory"))

    storage = 0.0
    for claim in claims:
        storage += parse_gib(_requests(claim, "spec", "resources", "requests").get("storage"))

    return UsageSnapshot(
        namespace=namespace,
        cpu_cores=cpu,
        memory_gib=memory,
        storage_gib=storage,
        pods=len(pods),
        pvcs=len(claims),
    )


def namespace_metrics(cluster: KubernetesClusterClient, namespace: str) -> dict:
    pods = cluster.list_pods(namespace)
    services = cluster.list_services(namespace)
    claims = cluster.list_persistent_volume_claims(namespace)
    running = sum(1 for p in pods if (p.get("status") or {}).get("phase") == "Running")
    return {
        "pods": {"total": len(pods), "running": running},
        "services": len(services),
        "pvcs": len(claims),
    }
