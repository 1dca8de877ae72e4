"""
Jobs API Router — operational / debug view

  GET /api/v1/jobs?status=FAILED&order=oldest&limit=50

Scoped to the caller's own documents.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Query

from paperfix.api.v1.documents import job_out
from paperfix.auth.dependencies import CurrentUser, Jobs
from paperfix.schemas.documents import JobListResponse, JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List processing jobs by status, newest or oldest first",
)
async def list_jobs(
    user:         CurrentUser,
    jobs:         Jobs,
    status_:      JobStatus | None                = Query(None, alias="status"),
    order:        Literal["newest", "oldest"]    = Query("newest"),
    limit:        int                             = Query(50, ge=1, le=200),
) -> JobListResponse:
    rows = await jobs.list_jobs(
        status=status_,
        owner_id=user.user_id,
        newest_first=order == "newest",
        limit=limit,
    )
    return JobListResponse(jobs=[job_out(job) for job in rows])
