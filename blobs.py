import logging
import time

import gridfs
from gridfs.errors import NoFile
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from database import db

logger = logging.getLogger(__name__)

FOLDERS = ("products", "categories", "banners", "promotions")


class BlobNotFound(Exception):
    pass


class BlobStore:
    """Image storage on GridFS. Files are addressed by key "<folder>/<ms>_<name>" and served under /files."""

    def __init__(self, database: Database, url_prefix: str = "/files"):
        self.fs = gridfs.GridFS(database, collection="uploads")
        self.url_prefix = url_prefix

    def upload(self, folder: str, filename: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        if folder not in FOLDERS:
            raise ValueError(f"Unknown upload folder: {folder}")
        key = f"{folder}/{int(time.time() * 1000)}_{filename or 'upload'}"
        file_id = self.fs.put(data, filename=key, content_type=content_type)
        logger.info("Stored %s (%d bytes)", key, len(data))
        return self.url_for(file_id)

    def url_for(self, file_id) -> str:
        return f"{self.url_prefix}/{file_id}"

    def open(self, file_id: str):
        try:
            return self.fs.get(ObjectId(file_id))
        except (InvalidId, NoFile):
            raise BlobNotFound(file_id)


blob_store = BlobStore(db)


def get_blobs() -> BlobStore:
    return blob_store
