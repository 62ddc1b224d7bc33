"""Corpus sources: where synced documents and memories are read from."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

from minio import Minio
from minio.error import S3Error

from personal_agent.config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_SECURE
from personal_agent.models import Store, StoreType

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")


@dataclass
class SourceEntry:
    """One file in a source, keyed by its path relative to the source root."""
    path: str
    modified_at: Optional[datetime] = None


class CorpusSource(Protocol):
    def list_entries(self) -> List[SourceEntry]:
        ...

    def fetch(self, path: str) -> str:
        ...


class LocalDirectorySource:
    """Markdown files under a directory."""

    def __init__(self, root: str):
        self.root = Path(root)

    def list_entries(self) -> List[SourceEntry]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Source directory {self.root} does not exist")

        entries = []
        for file in sorted(self.root.rglob("*")):
            if file.is_file() and file.suffix.lower() in MARKDOWN_SUFFIXES:
                entries.append(SourceEntry(
                    path=file.relative_to(self.root).as_posix(),
                    modified_at=datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc),
                ))
        return entries

    def fetch(self, path: str) -> str:
        return (self.root / path).read_text(encoding="utf-8")


class MinioSource:
    """Markdown objects under a bucket prefix."""

    def __init__(self, bucket_name: str, prefix: str = "", client: Optional[Minio] = None):
        self.bucket_name = bucket_name
        self.prefix = prefix
        self.client = client or Minio(
            endpoint=MINIO_ENDPOINT,
            access_key=MINIO_ACCESS_KEY,
            secret_key=MINIO_SECRET_KEY,
            secure=MINIO_SECURE,
        )

    @classmethod
    def from_location(cls, location: str, client: Optional[Minio] = None) -> "MinioSource":
        """Build from "bucket" or "bucket/prefix"."""
        bucket_name, _, prefix = location.strip("/").partition("/")
        return cls(bucket_name, prefix, client=client)

    def list_entries(self) -> List[SourceEntry]:
        try:
            objects = self.client.list_objects(self.bucket_name, prefix=self.prefix or None, recursive=True)
            return [
                SourceEntry(path=obj.object_name, modified_at=obj.last_modified)
                for obj in objects
                if not obj.is_dir and obj.object_name.lower().endswith(MARKDOWN_SUFFIXES)
            ]
        except S3Error as e:
            logger.error(f"Error listing {self.bucket_name}/{self.prefix}: {e}")
            raise

    def fetch(self, path: str) -> str:
        response = self.client.get_object(self.bucket_name, path)
        try:
            return response.read().decode("utf-8")
        finally:
            response.close()
            response.release_conn()


def source_for_store(store: Store) -> CorpusSource:
    """Pick the source implementation for a store's backend."""
    if store.type == StoreType.LOCAL:
        return LocalDirectorySource(store.location)
    if store.type == StoreType.MINIO:
        return MinioSource.from_location(store.location)
    raise ValueError(f"Unsupported store type: {store.type}")
