"""
Dependency resolution over the image dependencies of services.
"""
from typing import Iterable, List, Set
from ..MODELS.service_definition import Service

class DependencyResolver:
    """
    Walks the dependency graph of services, which must be acyclic.
    """
    def closure(self, services: Iterable[Service]) -> List[Service]:
        """
        Returns every service reachable from ``services``, dependencies first,
        each name listed once.

        :param services: Root services.
        :return: Services in dependency order.
        :raises ValueError: If a circular dependency is detected.
        """
        ordered: List[Service] = []
        visited: Set[str] = set()
        processing: Set[str] = set()

        def visit(service: Service):
            if service.name in processing:
                raise ValueError(f"Circular dependency detected involving {service.name}")
            if service.name in visited:
                return
            processing.add(service.name)
            for dep in service.dependencies:
                visit(dep)
            processing.remove(service.name)
            visited.add(service.name)
            ordered.append(service)

        for service in services:
            visit(service)

        return ordered
