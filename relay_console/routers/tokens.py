"""
Token catalog endpoints.

- GET    /api/tokens                  — masked token list + active id
- POST   /api/tokens                  — add a token (name comes from the relay)
- PATCH  /api/tokens/{token_id}       — rename
- POST   /api/tokens/{token_id}/activate
- POST   /api/tokens/{token_id}/touch — record use
- DELETE /api/tokens/{token_id}
- DELETE /api/tokens                  — clear all

Raw token values never leave the process.
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from relay_console.models.api import TokenCreateRequest, TokenRenameRequest, error_view
from relay_console.routers.deps import get_console
from relay_console.services.console import RelayConsole

logger = logging.getLogger(__name__)

router = APIRouter()


def _catalog_view(console: RelayConsole) -> dict:
    catalog = console.catalog
    return {
        "tokens": [t.to_safe_dict() for t in catalog.list()],
        "active_id": catalog.active_id,
        "count": catalog.count,
        "loading": catalog.is_loading,
        "error": error_view(catalog.last_error),
    }


@router.get("/tokens")
async def list_tokens(console: RelayConsole = Depends(get_console)):
    return _catalog_view(console)


@router.post("/tokens", status_code=status.HTTP_201_CREATED)
async def add_token(body: TokenCreateRequest, console: RelayConsole = Depends(get_console)):
    token = await console.catalog.add(body.value)
    return token.to_safe_dict()


@router.patch("/tokens/{token_id}")
async def rename_token(
    token_id: str, body: TokenRenameRequest, console: RelayConsole = Depends(get_console),
):
    console.catalog.rename(token_id, body.name)
    return _catalog_view(console)


@router.post("/tokens/{token_id}/activate")
async def activate_token(token_id: str, console: RelayConsole = Depends(get_console)):
    await console.catalog.set_active(token_id)
    return _catalog_view(console)


@router.post("/tokens/{token_id}/touch", status_code=status.HTTP_204_NO_CONTENT)
async def touch_token(token_id: str, console: RelayConsole = Depends(get_console)):
    console.catalog.touch_last_used(token_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_token(token_id: str, console: RelayConsole = Depends(get_console)):
    await console.catalog.remove(token_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/tokens", status_code=status.HTTP_204_NO_CONTENT)
async def clear_tokens(console: RelayConsole = Depends(get_console)):
    console.catalog.clear_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
