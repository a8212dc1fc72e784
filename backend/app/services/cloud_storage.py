"""
Lyceum Backend — Google Cloud Storage Client
==============================================

What:  Uploads staged files to a GCS bucket and issues signed read URLs.
Why:   Videos are too large for GridFS and always go to the bucket; every
       other media type falls back to the bucket when GridFS fails.
How:   google-cloud-storage is a blocking client, so each call runs in the
       threadpool. Transient API failures are retried by tenacity with
       exponential backoff and jitter.

Credentials:
    KEYFILENAME holds the service account JSON, base64-encoded. The client is
    built lazily on first use, so a deployment without cloud storage still
    starts and serves GridFS uploads.

Object naming:
    media/<epoch ms>-<url-encoded original name>
    public URL: https://storage.googleapis.com/<bucket>/<object name>
"""

import base64
import binascii
import json
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from google.api_core import exceptions as gexc
from google.cloud import storage
from google.oauth2 import service_account
from starlette.concurrency import run_in_threadpool
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import CloudStorageError

logger = logging.getLogger(__name__)

# Errors worth another attempt; 4xx responses other than 429 are not
TRANSIENT_ERRORS = (
    gexc.TooManyRequests,
    gexc.InternalServerError,
    gexc.BadGateway,
    gexc.ServiceUnavailable,
    gexc.GatewayTimeout,
    ConnectionError,
    TimeoutError,
)

# Resumable upload chunk size (must be a multiple of 256 KiB)
RESUMABLE_CHUNK_SIZE = 8 * 1024 * 1024

OBJECT_PREFIX = "media/"


def load_credentials(encoded: str) -> service_account.Credentials:
    """Decode base64 service account JSON into credentials."""
    try:
        info = json.loads(base64.b64decode(encoded))
    except (binascii.Error, ValueError) as e:
        raise CloudStorageError(
            message="Cloud storage credentials are malformed",
            context={"error_type": type(e).__name__},
        )
    return service_account.Credentials.from_service_account_info(info)


class CloudStorage:
    """
    Thin async wrapper over one GCS bucket.

    Args:
        client:      Pre-built storage client (used in tests).
        bucket_name: Override settings.gcs_bucket_name.
    """

    def __init__(
        self,
        client: Optional[storage.Client] = None,
        bucket_name: Optional[str] = None,
    ):
        self._client = client
        self._bucket_name = bucket_name

    @property
    def bucket_name(self) -> str:
        return self._bucket_name or settings.gcs_bucket_name

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            if not settings.gcs_configured:
                raise CloudStorageError(
                    message="Cloud storage is not configured",
                    context={"bucket": settings.gcs_bucket_name or None},
                )
            credentials = load_credentials(settings.gcs_credentials)
            self._client = storage.Client(
                project=credentials.project_id, credentials=credentials
            )
        return self._client

    def _bucket(self) -> storage.Bucket:
        if not self.bucket_name:
            raise CloudStorageError(message="Cloud storage is not configured")
        return self.client.bucket(self.bucket_name)

    # ── Naming ────────────────────────────────────────────────────────────
    @staticmethod
    def object_name_for(original_name: str) -> str:
        timestamp = int(time.time() * 1000)
        return f"{OBJECT_PREFIX}{timestamp}-{quote(original_name, safe='')}"

    def public_url(self, object_name: str) -> str:
        base = settings.gcs_public_base_url.rstrip("/")
        return f"{base}/{self.bucket_name}/{object_name}"

    def object_name_from_url(self, url: str) -> Optional[str]:
        """Object name behind a public URL of this bucket, else None."""
        prefix = self.public_url("")
        if self.bucket_name and url.startswith(prefix):
            return url[len(prefix):] or None
        return None

    # ── Upload ────────────────────────────────────────────────────────────
    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _upload_with_retry(self, path: Path, object_name: str, content_type: str) -> None:
        blob = self._bucket().blob(object_name, chunk_size=RESUMABLE_CHUNK_SIZE)
        await run_in_threadpool(
            blob.upload_from_filename, str(path), content_type=content_type
        )

    async def upload(self, path: Path, original_name: str, content_type: str) -> str:
        """
        Upload a staged file.

        Returns:  The public URL of the new object.
        Raises:   CloudStorageError when unconfigured or after all retries fail.
        """
        object_name = self.object_name_for(original_name)
        start_time = time.time()
        try:
            await self._upload_with_retry(path, object_name, content_type)
        except CloudStorageError:
            raise
        except Exception as e:
            logger.error("Cloud storage upload failed for %s: %s", object_name, e)
            raise CloudStorageError(
                message="Failed to upload file to cloud storage",
                context={"object": object_name, "error_type": type(e).__name__},
            )

        logger.info(
            "Uploaded %s to gs://%s/%s in %.0fms",
            path.name,
            self.bucket_name,
            object_name,
            (time.time() - start_time) * 1000,
        )
        return self.public_url(object_name)

    # ── Signed URLs ───────────────────────────────────────────────────────
    async def generate_signed_url(self, object_name: str) -> str:
        """V4 signed GET URL, valid for settings.signed_url_expiry_minutes."""
        try:
            blob = self._bucket().blob(object_name)
            return await run_in_threadpool(
                blob.generate_signed_url,
                version="v4",
                expiration=timedelta(minutes=settings.signed_url_expiry_minutes),
                method="GET",
            )
        except CloudStorageError:
            raise
        except Exception as e:
            logger.error("Failed to sign URL for %s: %s", object_name, e)
            raise CloudStorageError(
                message="Failed to generate a signed URL",
                context={"object": object_name, "error_type": type(e).__name__},
            )


cloud_storage = CloudStorage()
