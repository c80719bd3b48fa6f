"""Edge write endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response, status

from feedsync.api.v1.dependencies import GatewayDep, RequiredViewerDep
from feedsync.schemas import Edge

router = APIRouter(prefix="/edges", tags=["edges"])


def _check_subject(edge: Edge, viewer_id: str) -> None:
    if edge.subject_id != viewer_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Edges can only be written on behalf of the viewer",
        )


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
async def insert_edge(edge: Edge, gateway: GatewayDep, viewer_id: RequiredViewerDep) -> Response:
    _check_subject(edge, viewer_id)
    await gateway.insert_edge(edge)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_edge(edge: Edge, gateway: GatewayDep, viewer_id: RequiredViewerDep) -> Response:
    _check_subject(edge, viewer_id)
    await gateway.delete_edge(edge)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
