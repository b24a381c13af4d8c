"""
Image Storage
Private object storage for roof lead photos.

Two backends share one small interface:
- LocalStorage keeps files on disk and hands out short-lived JWT-signed URLs
  served by the roof leads router
- SupabaseStorage talks to a Supabase Storage bucket
"""
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union

from jose import JWTError, jwt
from supabase import Client, create_client

from roof_finder.core.config import settings
from roof_finder.core.exceptions import TransportError

logger = logging.getLogger(__name__)

SIGNED_URL_PURPOSE = "roof-lead-image"


class StorageBackend:
    """Interface for image storage backends"""

    bucket: str

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        raise NotImplementedError

    def remove(self, paths: List[str]) -> None:
        raise NotImplementedError

    def signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    def __init__(self, root: Union[str, Path, None] = None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.IMAGE_BUCKET
        self.root = Path(root or settings.LOCAL_STORAGE_DIR) / self.bucket
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise TransportError(f"Refusing storage path outside bucket: {path}")
        return target

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Local upload failed for {path}: {e}")
            raise TransportError(f"Failed to store image: {e}")
        logger.info(f"Stored {len(content)} bytes at {self.bucket}/{path} ({content_type})")

    def remove(self, paths: List[str]) -> None:
        for path in paths:
            try:
                self._resolve(path).unlink()
            except FileNotFoundError:
                logger.warning(f"Stored object already gone: {self.bucket}/{path}")
            except OSError as e:
                raise TransportError(f"Failed to remove image: {e}")

    def signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        expires_in = expires_in or settings.SIGNED_URL_EXPIRY_SECONDS
        payload = {
            "path": path,
            "bucket": self.bucket,
            "purpose": SIGNED_URL_PURPOSE,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return f"{settings.API_BASE_URL}{settings.API_PREFIX}/roof-leads/files/{token}"

    def verify_signed_token(self, token: str) -> Optional[Path]:
        """Return the file a signed URL points at, or None if the token is bad or expired."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError as e:
            logger.warning(f"Rejected signed image token: {e}")
            return None

        if payload.get("purpose") != SIGNED_URL_PURPOSE or payload.get("bucket") != self.bucket:
            return None
        try:
            target = self._resolve(payload.get("path", ""))
        except TransportError:
            return None
        return target if target.is_file() else None


class SupabaseStorage(StorageBackend):
    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.IMAGE_BUCKET
        try:
            self.client: Client = client or create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
            logger.info("Supabase storage client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Supabase client: {e}")
            raise

    @property
    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        try:
            self._bucket.upload(path, content, {"content-type": content_type, "upsert": "false"})
        except Exception as e:
            logger.error(f"Supabase upload failed for {path}: {e}")
            raise TransportError(f"Failed to upload image: {e}")

    def remove(self, paths: List[str]) -> None:
        try:
            self._bucket.remove(paths)
        except Exception as e:
            raise TransportError(f"Failed to remove image: {e}")

    def signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        expires_in = expires_in or settings.SIGNED_URL_EXPIRY_SECONDS
        try:
            response = self._bucket.create_signed_url(path, expires_in)
        except Exception as e:
            raise TransportError(f"Failed to sign image URL: {e}")
        return response.get("signedURL") or response.get("signedUrl")


@lru_cache()
def get_storage() -> StorageBackend:
    """Storage backend selected by STORAGE_BACKEND (FastAPI dependency)"""
    if settings.STORAGE_BACKEND == "supabase":
        if not settings.supabase_configured:
            raise RuntimeError("STORAGE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_KEY")
        return SupabaseStorage()
    return LocalStorage()
