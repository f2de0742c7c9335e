"""
Best-effort re-trigger of the process-job endpoint.

Retry and upload only queue the job; this nudges the processor so the user
does not wait for the next kick. A failed nudge is logged and the job simply
stays queued.
"""
import logging

import httpx

from tenderflow.config import settings
from tenderflow.utils.best_effort import attempt

logger = logging.getLogger("tenderflow.trigger")


def _post_process_job(job_id: str, http_client: httpx.Client | None) -> int:
    headers = {"authorization": f"Bearer {settings.service_token}"}
    payload = {"job_id": job_id}
    timeout = settings.trigger_timeout_seconds
    if http_client is not None:
        response = http_client.post(settings.process_job_url, json=payload, headers=headers, timeout=timeout)
    else:
        with httpx.Client() as client:
            response = client.post(settings.process_job_url, json=payload, headers=headers, timeout=timeout)
    logger.info("Triggered processing for job %s: HTTP %s", job_id, response.status_code)
    return response.status_code


def trigger_processing(job_id: str, http_client: httpx.Client | None = None) -> int | None:
    """Ask the processor to run ``job_id``. Returns the HTTP status, or None."""
    if not settings.process_job_url:
        logger.info("No process-job URL configured; job %s stays queued", job_id)
        return None
    return attempt(f"trigger job {job_id}", _post_process_job, job_id, http_client)
