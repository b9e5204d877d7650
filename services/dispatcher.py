"""Routes queued operations to Convex mutations."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from core.errors import ConvexError, TransientSyncError, UnknownOperationError
from models.operation import MUTATION_PATHS, OperationKind
from services.convex_client import ConvexClient


class MutationDispatcher:
    """One Convex mutation per :class:`OperationKind`."""

    def __init__(
        self,
        client: ConvexClient,
        routes: Optional[Mapping[OperationKind, str]] = None,
    ) -> None:
        self.client = client
        self.routes: Dict[OperationKind, str] = dict(MUTATION_PATHS if routes is None else routes)

    def path_for(self, operation_type: str) -> str:
        kind = OperationKind.parse(operation_type)
        if kind is None or kind not in self.routes:
            raise UnknownOperationError(operation_type)
        return self.routes[kind]

    async def invoke(self, operation_type: str, payload: Dict[str, Any]) -> Any:
        path = self.path_for(operation_type)
        try:
            return await self.client.mutation(path, payload)
        except ConvexError as exc:
            raise TransientSyncError(str(exc)) from exc


class SingleMutationDispatcher:
    """Sends every operation, type included, to one sync mutation."""

    def __init__(self, client: ConvexClient, path: str) -> None:
        self.client = client
        self.path = path

    async def invoke(self, operation_type: str, payload: Dict[str, Any]) -> Any:
        try:
            return await self.client.mutation(self.path, {"type": operation_type, "data": payload})
        except ConvexError as exc:
            raise TransientSyncError(str(exc)) from exc


__all__ = ["MutationDispatcher", "SingleMutationDispatcher"]
