"""
Cloudflare R2 object store implementation.

Cloudflare R2 is S3-compatible, so the regular boto3 S3 client is used with
an R2 endpoint and path-style addressing.
"""

import logging
from typing import List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from shared.config import ScanConfig
from shared.constants import (
    DEFAULT_LIST_PAGE_SIZE,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_PRESIGNED_URL_EXPIRY,
    DEFAULT_R2_REGION,
)
from shared.exceptions import ObjectNotFound, StoreUnavailable
from shared.models import StoredObject
from .storage_provider import ObjectStore, normalize_key

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class CloudflareR2Store(ObjectStore):
    """
    R2 store backed by a boto3 S3 client.

    The client is created once and shared by everything that reads the
    bucket during a scan.
    """

    def __init__(self, s3_client, bucket_name: str, endpoint_url: str,
                 public_url: Optional[str] = None,
                 presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY,
                 page_size: int = DEFAULT_LIST_PAGE_SIZE,
                 logger: Optional[logging.Logger] = None):
        self.s3_client = s3_client
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url.rstrip("/")
        self.public_url = public_url.rstrip("/") if public_url else None
        self.presigned_url_expiry = presigned_url_expiry
        self.page_size = page_size
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: ScanConfig, logger: Optional[logging.Logger] = None) -> 'CloudflareR2Store':
        """
        Build the store from configuration.

        Raises:
            StoreUnavailable: If credentials or bucket settings are missing
        """
        missing = config.missing_store_settings()
        if missing:
            raise StoreUnavailable(
                f"R2 is not configured. Missing: {', '.join(missing)}"
            )

        timeout = config.store_timeout or DEFAULT_NETWORK_TIMEOUT
        s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region or DEFAULT_R2_REGION,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={'max_attempts': 3, 'mode': 'standard'},
                s3={'addressing_style': 'path'},  # Required for R2
                signature_version='s3v4',
            ),
        )
        return cls(
            s3_client,
            bucket_name=config.bucket_name,
            endpoint_url=config.endpoint,
            public_url=config.public_url,
            presigned_url_expiry=config.presigned_url_expiry,
            logger=logger,
        )

    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        """List objects in the R2 bucket, following continuation tokens."""
        kwargs = {
            'Bucket': self.bucket_name,
            'PaginationConfig': {'PageSize': self.page_size},
        }
        if prefix:
            kwargs['Prefix'] = prefix.lstrip("/")

        objects = []
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(**kwargs):
                for obj in page.get('Contents', []):
                    objects.append(StoredObject(
                        key=obj['Key'],
                        size=obj.get('Size', 0),
                        last_modified=obj.get('LastModified'),
                        etag=obj.get('ETag', '').strip('"') or None,
                    ))
        except NoCredentialsError as e:
            raise StoreUnavailable(f"R2 credentials are missing: {e}")
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Error listing R2 objects: {e}")
            raise StoreUnavailable(f"Failed to list bucket {self.bucket_name}: {e}")

        self.logger.debug(f"Listed {len(objects)} objects under prefix '{prefix}'")
        return objects

    def fetch_bytes(self, key: str) -> bytes:
        clean_key = normalize_key(key)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=clean_key)
            body = response.get('Body')
            if body is None:
                raise StoreUnavailable("No body in response", object_key=clean_key)
            try:
                return body.read()
            finally:
                body.close()
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound(f"Object not found: {clean_key}", object_key=clean_key)
            raise StoreUnavailable(f"Failed to fetch {clean_key}: {e}", object_key=clean_key)
        except NoCredentialsError as e:
            raise StoreUnavailable(f"R2 credentials are missing: {e}", object_key=clean_key)
        except BotoCoreError as e:
            raise StoreUnavailable(f"Failed to fetch {clean_key}: {e}", object_key=clean_key)

    def head_object(self, key: str) -> Optional[StoredObject]:
        clean_key = normalize_key(key)
        try:
            response = self.s3_client.head_object(Bucket=self.bucket_name, Key=clean_key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StoreUnavailable(f"Failed to head {clean_key}: {e}", object_key=clean_key)
        except BotoCoreError as e:
            raise StoreUnavailable(f"Failed to head {clean_key}: {e}", object_key=clean_key)

        return StoredObject(
            key=clean_key,
            size=response.get('ContentLength', 0),
            last_modified=response.get('LastModified'),
            etag=response.get('ETag', '').strip('"') or None,
        )

    def access_url(self, key: str, presigned: bool = False) -> str:
        clean_key = normalize_key(key)

        if presigned:
            try:
                return self.s3_client.generate_presigned_url(
                    'get_object',
                    Params={'Bucket': self.bucket_name, 'Key': clean_key},
                    ExpiresIn=self.presigned_url_expiry
                )
            except (ClientError, BotoCoreError) as e:
                raise StoreUnavailable(f"URL generation failed for {clean_key}: {e}", object_key=clean_key)

        if self.public_url:
            return f"{self.public_url}/{clean_key}"
        return f"{self.endpoint_url}/{self.bucket_name}/{clean_key}"
