"""
Post-commit image persistence.

Each committed row with curated images becomes an ImagePersistJob. Running
a job copies up to five images into the item-images bucket and records
them in item_images; if a download or upload fails the external URL is
stored instead. Jobs keep their status so failed ones can be re-run
without touching the imported rows.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional
import httpx
import structlog

from exceptions import RecordStoreError
from models.bulk_import import ImageCandidate, ImageJobResponse, ImageJobStatus
from services.batch_committer import CommitEntry, ImportResult
from utils.cancellation import CancellationToken, check_cancelled
from utils.text_utils import cell_text

logger = structlog.get_logger(__name__)

DEFAULT_MAX_IMAGES = 5
_EXTENSION = re.compile(r"\.(jpe?g|png|webp)", re.IGNORECASE)


@dataclass
class ImagePersistJob:
    """Copy one item's curated gallery into storage."""
    row_index: int
    images: list[ImageCandidate]
    item_code: Optional[str] = None
    name: Optional[str] = None
    department_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    item_id: Optional[str] = None
    status: ImageJobStatus = ImageJobStatus.PENDING
    attempts: int = 0
    persisted: int = 0
    error: Optional[str] = None

    def to_response(self) -> ImageJobResponse:
        return ImageJobResponse(
            row=self.row_index + 2,
            item_code=self.item_code,
            item_id=self.item_id,
            status=self.status,
            attempts=self.attempts,
            persisted=self.persisted,
            error=self.error,
        )


def build_image_jobs(
    entries: list[CommitEntry],
    result: ImportResult,
    selected_images: dict[int, list[ImageCandidate]],
    uploaded_by: Optional[str] = None,
) -> list[ImagePersistJob]:
    """One pending job per inserted/updated row that has selected images."""
    committed = set(result.committed_indices())
    jobs = []
    for entry in entries:
        images = selected_images.get(entry.row_index) or []
        if entry.row_index not in committed or not images:
            continue
        jobs.append(ImagePersistJob(
            row_index=entry.row_index,
            images=list(images),
            item_code=cell_text(entry.record.get("item_code")) or None,
            name=cell_text(entry.record.get("name")) or None,
            department_id=entry.record.get("department_id"),
            uploaded_by=uploaded_by or entry.record.get("created_by"),
        ))
    logger.info("image_jobs_built", jobs=len(jobs))
    return jobs


def image_extension(url: str) -> str:
    """File extension for a stored copy: jpg, png or webp (default jpg)."""
    match = _EXTENSION.search(url)
    if not match:
        return "jpg"
    ext = match.group(1).lower()
    return "jpg" if ext == "jpeg" else ext


def image_type_for(candidate: ImageCandidate) -> str:
    return "manual" if candidate.source == "manual" else "auto"


async def _download(http_client: httpx.AsyncClient, url: str) -> tuple[bytes, str]:
    response = await http_client.get(url, follow_redirects=True)
    response.raise_for_status()
    content_type = response.headers.get("content-type") or "image/jpeg"
    return response.content, content_type


async def _persist_one(
    job: ImagePersistJob,
    index: int,
    candidate: ImageCandidate,
    store,
    http_client: httpx.AsyncClient,
) -> dict:
    """item_images row for one image, stored copy if possible."""
    image_url = candidate.url
    source = candidate.source
    try:
        content, content_type = await _download(http_client, candidate.url)
        path = f"{job.item_id}/{index}.{image_extension(candidate.url)}"
        image_url = await asyncio.to_thread(store.upload_image, path, content, content_type)
        source = f"{candidate.source}_stored"
    except (httpx.HTTPError, RecordStoreError) as e:
        logger.warning(
            "image_copy_failed",
            item_id=job.item_id,
            index=index,
            url=candidate.url,
            error=str(e),
        )

    return {
        "item_id": job.item_id,
        "image_url": image_url,
        "is_primary": index == 0,
        "image_type": image_type_for(candidate),
        "source": source,
        "sort_order": index,
        "uploaded_by": job.uploaded_by,
    }


async def run_image_job(
    job: ImagePersistJob,
    store,
    http_client: httpx.AsyncClient,
    max_images: int = DEFAULT_MAX_IMAGES,
) -> ImagePersistJob:
    """Run one job; never raises for store or network failures."""
    job.attempts += 1
    try:
        if job.item_id is None:
            job.item_id = await asyncio.to_thread(
                store.find_item_id, job.item_code, job.name, job.department_id
            )
        if job.item_id is None:
            job.status = ImageJobStatus.FAILED
            job.error = "Committed item not found"
            logger.warning("image_job_item_missing", row=job.row_index + 2, item_code=job.item_code)
            return job

        records = []
        for index, candidate in enumerate(job.images[:max_images]):
            records.append(await _persist_one(job, index, candidate, store, http_client))

        await asyncio.to_thread(store.insert_item_images, records)
    except RecordStoreError as e:
        job.status = ImageJobStatus.FAILED
        job.error = e.store_message
        logger.warning("image_job_failed", row=job.row_index + 2, error=e.store_message)
        return job

    job.status = ImageJobStatus.DONE
    job.persisted = len(records)
    job.error = None
    logger.info("image_job_done", row=job.row_index + 2, item_id=job.item_id, images=len(records))
    return job


async def run_image_jobs(
    jobs: list[ImagePersistJob],
    store,
    http_client: Optional[httpx.AsyncClient] = None,
    max_images: int = DEFAULT_MAX_IMAGES,
    timeout: float = 15.0,
    cancel_token: Optional[CancellationToken] = None,
) -> list[ImagePersistJob]:
    """
    Run every job that is not done yet, sequentially.

    Args:
        jobs: Jobs from build_image_jobs (done jobs are left alone)
        store: Record store with find_item_id / upload_image / insert_item_images
        http_client: Client for downloads; one is created when omitted
        max_images: Images copied per item
        timeout: Download timeout when creating a client
        cancel_token: Checked before each job

    Returns:
        The same job list, updated in place
    """
    if http_client is None:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await run_image_jobs(jobs, store, client, max_images, timeout, cancel_token)

    todo = [job for job in jobs if job.status != ImageJobStatus.DONE]
    logger.info("image_jobs_started", jobs=len(todo))

    for job in todo:
        check_cancelled(cancel_token, {"row": job.row_index + 2})
        await run_image_job(job, store, http_client, max_images)

    logger.info(
        "image_jobs_complete",
        done=sum(1 for j in jobs if j.status == ImageJobStatus.DONE),
        failed=sum(1 for j in jobs if j.status == ImageJobStatus.FAILED),
    )
    return jobs
