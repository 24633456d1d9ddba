# backend/sitedb/schemas.py

import math

from fastapi import HTTPException, status
from pydantic import BaseModel

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


# -------------------------------------------------------------------
# PAGINATION
# -------------------------------------------------------------------

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


def validate_page(page: int, limit: int) -> None:
    if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid pagination parameters. page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}.",
        )


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


class SuccessResponse(BaseModel):
    success: bool = True
