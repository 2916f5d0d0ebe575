import io
import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from ..settings import Settings

logger = logging.getLogger("recipeshare.storage")

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass
class PutResult:
    key: str
    public_url: str


class BlobStore:
    """One S3-compatible bucket (raw uploads or processed renditions)."""

    def __init__(
        self,
        *,
        bucket: str,
        public_base_url: str,
        client=None,
        endpoint_url: Optional[str] = None,
        region_name: str = "auto",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.s3 = client or boto3.client(
            service_name="s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region_name,
        )

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def download_bytes(self, key: str) -> bytes:
        response = self.s3.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def put_bytes(
        self,
        *,
        key: str,
        content_type: str,
        data: bytes,
        cache_control: Optional[str] = None,
    ) -> PutResult:
        extra = {"CacheControl": cache_control} if cache_control else {}
        self.s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=io.BytesIO(data),
            ContentType=content_type,
            **extra,
        )
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{key}")
        return PutResult(key=key, public_url=self.public_url(key))

    def delete(self, key: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=key)

    def exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def healthcheck(self) -> bool:
        # lightweight call; will raise if creds/endpoint wrong
        self.s3.list_objects_v2(Bucket=self.bucket, MaxKeys=1)
        return True


def build_blob_stores(settings: Settings) -> tuple[BlobStore, BlobStore]:
    """Raw and processed stores sharing one S3 client."""
    client = boto3.client(
        service_name="s3",
        endpoint_url=settings.object_store_endpoint,
        aws_access_key_id=settings.object_store_access_key_id,
        aws_secret_access_key=settings.object_store_secret_access_key,
        region_name=settings.object_store_region,
    )
    raw = BlobStore(
        bucket=settings.raw_bucket,
        public_base_url=settings.raw_public_base_url,
        client=client,
    )
    processed = BlobStore(
        bucket=settings.processed_bucket,
        public_base_url=settings.processed_public_base_url,
        client=client,
    )
    return raw, processed
