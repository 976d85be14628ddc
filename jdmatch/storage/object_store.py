"""Object storage for source resumes.

``S3ObjectStore`` is the production backend. ``LocalObjectStore`` maps keys
onto files under a root directory and is used for local runs and tests.
"""
from __future__ import annotations
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    """Storage operation failed for a reason other than a missing key"""
    pass


class DocumentNotFoundError(ObjectStoreError):
    """The requested key does not exist"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")


@dataclass
class ObjectInfo:
    key: str
    size: int = 0


@dataclass
class ListPage:
    """One page of a listing; ``next_page_token`` is set when ``is_truncated``."""
    items: List[ObjectInfo] = field(default_factory=list)
    next_page_token: Optional[str] = None
    is_truncated: bool = False


class ObjectStore(ABC):
    """Minimal key/value blob store interface used by ingestion and matching."""

    @abstractmethod
    def list(self, prefix: str = "", page_token: Optional[str] = None, max_keys: int = 100) -> ListPage:
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        pass

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        pass

    @abstractmethod
    def move(self, src_key: str, dst_key: str) -> None:
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    def download(self, key: str, local_path: Path) -> Path:
        """Write the object's bytes to ``local_path``."""
        local_path = Path(local_path)
        local_path.write_bytes(self.get(key))
        return local_path


class S3ObjectStore(ObjectStore):
    """Amazon S3 bucket backend."""

    def __init__(self, bucket: str, region_name: Optional[str] = None, client=None):
        if not bucket:
            raise ValueError("Bucket name is required")
        self.bucket = bucket
        self.client = client or boto3.client("s3", region_name=region_name)

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        code = error.response.get("Error", {}).get("Code", "")
        return code in {"NoSuchKey", "404", "NotFound"}

    def list(self, prefix: str = "", page_token: Optional[str] = None, max_keys: int = 100) -> ListPage:
        params = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if page_token:
            params["ContinuationToken"] = page_token
        try:
            response = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(f"Listing s3://{self.bucket}/{prefix} failed: {e}") from e
        items = [ObjectInfo(key=o["Key"], size=o.get("Size", 0)) for o in response.get("Contents", [])]
        truncated = bool(response.get("IsTruncated"))
        return ListPage(
            items=items,
            next_page_token=response.get("NextContinuationToken") if truncated else None,
            is_truncated=truncated,
        )

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if self._is_missing(e):
                raise DocumentNotFoundError(key) from e
            raise ObjectStoreError(f"Download of {key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Download of {key} failed: {e}") from e

    def put(self, key: str, data: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(f"Upload of {key} failed: {e}") from e

    def move(self, src_key: str, dst_key: str) -> None:
        # S3 has no rename: copy then delete the source
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": src_key},
                Key=dst_key,
            )
            self.client.delete_object(Bucket=self.bucket, Key=src_key)
        except ClientError as e:
            if self._is_missing(e):
                raise DocumentNotFoundError(src_key) from e
            raise ObjectStoreError(f"Move {src_key} -> {dst_key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Move {src_key} -> {dst_key} failed: {e}") from e
        logger.info("Moved s3://%s/%s to %s", self.bucket, src_key, dst_key)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise ObjectStoreError(f"Lookup of {key} failed: {e}") from e


class LocalObjectStore(ObjectStore):
    """Filesystem backend: key ``a/b.pdf`` is the file ``<root>/a/b.pdf``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents and path != self.root.resolve():
            raise ObjectStoreError(f"Key escapes store root: {key}")
        return path

    def _all_keys(self) -> List[str]:
        keys = []
        for dirpath, _, filenames in os.walk(self.root):
            for name in filenames:
                full = Path(dirpath) / name
                keys.append(full.relative_to(self.root).as_posix())
        return sorted(keys)

    def list(self, prefix: str = "", page_token: Optional[str] = None, max_keys: int = 100) -> ListPage:
        keys = [k for k in self._all_keys() if k.startswith(prefix)]
        if page_token:
            keys = [k for k in keys if k > page_token]
        page = keys[:max_keys]
        truncated = len(keys) > max_keys
        return ListPage(
            items=[ObjectInfo(key=k, size=self._path(k).stat().st_size) for k in page],
            next_page_token=page[-1] if truncated else None,
            is_truncated=truncated,
        )

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise DocumentNotFoundError(key)
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def move(self, src_key: str, dst_key: str) -> None:
        src = self._path(src_key)
        if not src.is_file():
            raise DocumentNotFoundError(src_key)
        dst = self._path(dst_key)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        logger.info("Moved %s to %s", src_key, dst_key)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()


def processed_prefix_for(source_prefix: str) -> str:
    """``resume_input/`` -> ``resume_input_processed/``"""
    return source_prefix.rstrip("/") + "_processed/"
