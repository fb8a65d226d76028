# apps/api/supportdesk/core/storage.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .clock import utcnow
from .errors import ObjectStoreError
from .settings import settings

logger = logging.getLogger("storage")

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class StorageConfig:
    endpoint_url: str | None
    bucket: str
    region: str
    access_key_id: str | None
    secret_access_key: str | None


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class ObjectProbe:
    exists: bool
    size: int = 0


_logged_config = False


def get_storage_config() -> StorageConfig:
    global _logged_config
    if not (settings.OBJECT_STORAGE_BUCKET or "").strip():
        raise RuntimeError("Missing object storage configuration")
    cfg = StorageConfig(
        endpoint_url=settings.OBJECT_STORAGE_ENDPOINT or None,
        bucket=(settings.OBJECT_STORAGE_BUCKET or "").strip(),
        region=settings.OBJECT_STORAGE_REGION,
        access_key_id=settings.OBJECT_STORAGE_ACCESS_KEY_ID,
        secret_access_key=settings.OBJECT_STORAGE_SECRET_ACCESS_KEY,
    )
    if not _logged_config:
        logger.info(
            "Object storage config loaded: endpoint=%s bucket=%s region=%s",
            cfg.endpoint_url or "",
            cfg.bucket,
            cfg.region,
        )
        _logged_config = True
    return cfg


def get_s3_client(cfg: StorageConfig | None = None):
    cfg = cfg or get_storage_config()
    kwargs = {}
    if cfg.access_key_id and cfg.secret_access_key:
        kwargs["aws_access_key_id"] = cfg.access_key_id
        kwargs["aws_secret_access_key"] = cfg.secret_access_key
    # endpoint 가 없으면 AWS 기본 엔드포인트 + 기본 자격증명 체인 사용
    return boto3.client(
        "s3",
        endpoint_url=cfg.endpoint_url,
        region_name=cfg.region,
        config=Config(s3={"addressing_style": "path"}, signature_version="s3v4"),
        **kwargs,
    )


def is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(error.get("Code")) in _NOT_FOUND_CODES or status == 404


class ObjectStoreGateway(ABC):
    """Signed URLs, probing and deletion against a bucket.

    Absence is a normal answer from ``probe`` and ``delete``; every other
    failure surfaces as :class:`ObjectStoreError`.
    """

    @abstractmethod
    def presign_upload(
        self, bucket: str, key: str, content_type: str, size: int, ttl: timedelta
    ) -> SignedUrl: ...

    @abstractmethod
    def presign_download(
        self, bucket: str, key: str, response_content_type: str, ttl: timedelta
    ) -> SignedUrl: ...

    @abstractmethod
    def probe(self, bucket: str, key: str) -> ObjectProbe: ...

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None: ...


class S3ObjectStore(ObjectStoreGateway):
    def __init__(self, client, clock: Callable[[], datetime] = utcnow):
        self._s3 = client
        self._clock = clock

    def _presign(self, method: str, params: dict, ttl: timedelta) -> SignedUrl:
        expires_in = int(ttl.total_seconds())
        issued_at = self._clock()
        try:
            url = self._s3.generate_presigned_url(
                ClientMethod=method,
                Params=params,
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Object storage presign failed: method=%s key=%s", method, params.get("Key"))
            raise ObjectStoreError(f"presign failed: {exc}") from exc
        return SignedUrl(url=url, expires_at=issued_at + timedelta(seconds=expires_in))

    def presign_upload(self, bucket, key, content_type, size, ttl):
        return self._presign(
            "put_object",
            {"Bucket": bucket, "Key": key, "ContentType": content_type, "ContentLength": size},
            ttl,
        )

    def presign_download(self, bucket, key, response_content_type, ttl):
        return self._presign(
            "get_object",
            {"Bucket": bucket, "Key": key, "ResponseContentType": response_content_type},
            ttl,
        )

    def probe(self, bucket, key):
        try:
            head = self._s3.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                return ObjectProbe(exists=False)
            raise ObjectStoreError(f"head_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"head_object failed for {key}: {exc}") from exc
        return ObjectProbe(exists=True, size=int(head.get("ContentLength") or 0))

    def delete(self, bucket, key):
        try:
            self._s3.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                return
            raise ObjectStoreError(f"delete_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"delete_object failed for {key}: {exc}") from exc


def get_object_store() -> ObjectStoreGateway:
    return S3ObjectStore(get_s3_client())
