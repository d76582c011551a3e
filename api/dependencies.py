"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

from typing import Optional

import httpx
from fastapi import HTTPException, status

from utils.schemas import ToolSource


def get_provider_transport() -> Optional[httpx.AsyncBaseTransport]:
    """
    Transport used for outbound provider calls.

    ``None`` means httpx's default network transport; tests override this
    dependency with an ``httpx.MockTransport``.
    """
    return None


def parse_source(value: str) -> ToolSource:
    source = ToolSource.parse(value)
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid source: {value}",
        )
    return source
