"""
Response helpers for freshness-sensitive routes.
"""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

NO_CACHE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

DATA_SOURCE_HEADER = "X-Data-Source"


def fresh_json(
    content: Any,
    status_code: int = 200,
    data_source: Optional[str] = None,
) -> JSONResponse:
    """JSON response that intermediaries must not cache."""
    headers = dict(NO_CACHE_HEADERS)
    if data_source:
        headers[DATA_SOURCE_HEADER] = data_source
    return JSONResponse(content=content, status_code=status_code, headers=headers)
