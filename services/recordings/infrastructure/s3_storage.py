"""Recording objects in an S3-compatible bucket (R2, MinIO, AWS)."""

from __future__ import annotations

import logging

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

MIN_PRESIGN_SECONDS = 60


def _s3_client(endpoint_url: str, region_name: str, access_key: str, secret_key: str):
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=region_name,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


class S3MultipartStorage:
    """Multipart upload sessions plus presigned part and download URLs.

    Bucket operations go to ``endpoint_url``; URLs handed to recorders and
    viewers are signed against ``public_endpoint_url`` when one is set, since
    the signature covers the host.
    """

    def __init__(
        self,
        *,
        endpoint_url: str,
        public_endpoint_url: str | None = None,
        region_name: str,
        bucket_name: str,
        access_key: str,
        secret_key: str,
    ) -> None:
        self._bucket = bucket_name
        self._client = _s3_client(endpoint_url, region_name, access_key, secret_key)
        if public_endpoint_url and public_endpoint_url != endpoint_url:
            self._signer = _s3_client(
                public_endpoint_url, region_name, access_key, secret_key
            )
        else:
            self._signer = self._client

    def initiate_upload(self, object_key: str, content_type: str) -> str:
        created = self._client.create_multipart_upload(
            Bucket=self._bucket, Key=object_key, ContentType=content_type
        )
        logger.info("Opened multipart upload for %s", object_key)
        return created["UploadId"]

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_no: int,
        expires_in_seconds: int,
    ) -> str:
        return self._signer.generate_presigned_url(
            ClientMethod="upload_part",
            Params={
                "Bucket": self._bucket,
                "Key": object_key,
                "UploadId": upload_id,
                "PartNumber": part_no,
            },
            ExpiresIn=max(expires_in_seconds, MIN_PRESIGN_SECONDS),
        )

    def complete_upload(
        self, *, object_key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> str | None:
        # Storage enforces ordering and gaps; parts are passed through as given.
        assembled = self._client.complete_multipart_upload(
            Bucket=self._bucket,
            Key=object_key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [{"PartNumber": number, "ETag": etag} for number, etag in parts]
            },
        )
        return assembled.get("Location")

    def abort_upload(self, *, object_key: str, upload_id: str) -> None:
        try:
            self._client.abort_multipart_upload(
                Bucket=self._bucket, Key=object_key, UploadId=upload_id
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") != "NoSuchUpload":
                raise
            logger.info("Multipart upload %s for %s was already gone", upload_id, object_key)

    def head_object_size(self, object_key: str) -> int | None:
        try:
            head = self._client.head_object(Bucket=self._bucket, Key=object_key)
        except ClientError as exc:
            logger.warning("Could not read size of %s: %s", object_key, exc)
            return None
        return int(head.get("ContentLength") or 0)

    def generate_get_url(self, *, object_key: str, expires_in_seconds: int) -> str:
        return self._signer.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self._bucket, "Key": object_key},
            ExpiresIn=expires_in_seconds,
        )
