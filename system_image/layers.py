"""Layer dependency graph"""
import heapq
from typing import Iterable

from system_image.exceptions import LayerDependencyError
from system_image.models import LayerImage


def find_unknown_dependencies(layers: Iterable[LayerImage]) -> dict[str, list[str]]:
    """
    Find dependencies referencing layers that are not part of the image
    :param layers: layers of a single image
    :return: mapping of layer name to the unknown layer names it depends on
    """
    layers = list(layers)
    known = {layer.name for layer in layers}
    unknown: dict[str, list[str]] = {}
    for layer in layers:
        missing = [dep for dep in layer.dependencies if dep not in known]
        if missing:
            unknown[layer.name] = missing
    return unknown


def find_cycle_members(layers: Iterable[LayerImage]) -> list[str]:
    """
    Find layers that can never be deployed because they sit on, or depend on,
    a dependency cycle. Unknown dependencies are ignored.
    :param layers: layers of a single image
    :return: sorted names of the blocked layers, empty if the graph is acyclic
    """
    _, blocked = _kahn(list(layers))
    return sorted(blocked)


def deployment_order(layers: Iterable[LayerImage]) -> list[LayerImage]:
    """
    Order layers for deployment: dependencies first, then lower priority, then name
    :param layers: layers of a single image
    :return: layers in deployment order
    :raises LayerDependencyError: on unknown dependencies or cycles
    """
    layers = list(layers)
    unknown = find_unknown_dependencies(layers)
    if unknown:
        details = ", ".join(
            f"{name} -> {', '.join(deps)}" for name, deps in sorted(unknown.items())
        )
        raise LayerDependencyError(
            f"Layers depend on unknown layers: {details}", sorted(unknown)
        )
    ordered, blocked = _kahn(layers)
    if blocked:
        raise LayerDependencyError(
            f"Layer dependency cycle detected: {', '.join(sorted(blocked))}",
            sorted(blocked),
        )
    return ordered


def _kahn(layers: list[LayerImage]) -> tuple[list[LayerImage], set[str]]:
    by_name = {layer.name: layer for layer in layers}
    pending = {
        layer.name: {dep for dep in layer.dependencies if dep in by_name}
        for layer in layers
    }
    dependents: dict[str, set[str]] = {name: set() for name in by_name}
    for name, deps in pending.items():
        for dep in deps:
            dependents[dep].add(name)

    ready = [
        (by_name[name].priority, name) for name, deps in pending.items() if not deps
    ]
    heapq.heapify(ready)
    ordered: list[LayerImage] = []
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(by_name[name])
        for dependent in dependents[name]:
            pending[dependent].discard(name)
            if not pending[dependent]:
                heapq.heappush(ready, (by_name[dependent].priority, dependent))

    done = {layer.name for layer in ordered}
    return ordered, set(by_name) - done
