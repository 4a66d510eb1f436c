from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Callable
from urllib.parse import quote, urlencode

from PIL import Image, UnidentifiedImageError

from abroaddesk.core.errors import AccessDeniedError, MediaNotFoundError, StorageError
from abroaddesk.core.files import ensure_directory, make_read_only, write_bytes_atomic
from abroaddesk.core.hashing import compute_bytes_digest, sign_message, verify_signature
from abroaddesk.core.ids import new_asset_id
from abroaddesk.core.time import epoch_seconds, now_utc_iso
from abroaddesk.domain.models.record import StoredAsset, UploadedFile


class LocalMediaStore:
    """Filesystem media store with HMAC-signed, expiring preview URLs.

    Assets live at ``<base>/<bucket>/<aa>/<bb>/<asset_id>`` with a JSON sidecar
    holding the original filename, content type, size and sha256 digest.
    """

    def __init__(
        self,
        base_dir: Path,
        *,
        signing_key: str,
        public_base_url: str = "",
        ttl_seconds: int = 3600,
        clock: Callable[[], int] = epoch_seconds,
    ) -> None:
        self.base_dir = base_dir
        self.signing_key = signing_key
        self.public_base_url = public_base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def asset_relpath(self, bucket: str, asset_id: str) -> Path:
        return Path(bucket) / asset_id[:2] / asset_id[2:4] / asset_id

    def asset_abspath(self, bucket: str, asset_id: str) -> Path:
        return self.base_dir / self.asset_relpath(bucket, asset_id)

    def store(self, bucket: str, upload: UploadedFile) -> str:
        asset_id = new_asset_id()
        blob_path = self.asset_abspath(bucket, asset_id)
        meta = {
            "filename": upload.filename,
            "content_type": upload.media_type,
            "size_bytes": upload.size,
            "digest_sha256": compute_bytes_digest(upload.data),
            "stored_at": now_utc_iso(),
        }
        try:
            ensure_directory(blob_path.parent)
            write_bytes_atomic(blob_path, upload.data)
            make_read_only(blob_path)
            write_bytes_atomic(self._meta_path(blob_path), json.dumps(meta, ensure_ascii=True).encode("utf-8"))
        except OSError as exc:
            raise StorageError(f"Failed to store media in bucket {bucket}", exc) from exc
        return asset_id

    def exists(self, bucket: str, asset_id: str) -> bool:
        blob_path = self.asset_abspath(bucket, asset_id)
        return blob_path.exists() and self._meta_path(blob_path).exists()

    def preview_url(
        self,
        bucket: str,
        asset_id: str,
        width: int | None = None,
        height: int | None = None,
    ) -> str:
        if not self.exists(bucket, asset_id):
            raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}")
        expires = self.clock() + self.ttl_seconds
        params: dict[str, object] = {}
        if width:
            params["width"] = width
        if height:
            params["height"] = height
        params["expires"] = expires
        params["signature"] = sign_message(self.signing_key, self._signed_message(bucket, asset_id, width, height, expires))
        path = f"/media/{quote(bucket)}/{quote(asset_id)}/preview"
        return f"{self.public_base_url}{path}?{urlencode(params)}"

    def render_preview(
        self,
        bucket: str,
        asset_id: str,
        *,
        width: int | None,
        height: int | None,
        expires: int,
        signature: str,
    ) -> tuple[bytes, str]:
        message = self._signed_message(bucket, asset_id, width, height, expires)
        if not verify_signature(self.signing_key, message, signature):
            raise AccessDeniedError("Invalid media signature")
        if expires < self.clock():
            raise AccessDeniedError("Media link has expired")

        asset = self.read(bucket, asset_id)
        if not (width or height) or not asset.content_type.startswith("image/"):
            return asset.data, asset.content_type
        return self._thumbnail(asset, width, height)

    def read(self, bucket: str, asset_id: str) -> StoredAsset:
        blob_path = self.asset_abspath(bucket, asset_id)
        meta_path = self._meta_path(blob_path)
        if not blob_path.exists() or not meta_path.exists():
            raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}")
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            data = blob_path.read_bytes()
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read media asset {bucket}/{asset_id}", exc) from exc
        return StoredAsset(
            asset_id=asset_id,
            bucket=bucket,
            filename=str(meta.get("filename") or asset_id),
            content_type=str(meta.get("content_type") or "application/octet-stream"),
            data=data,
        )

    def delete(self, bucket: str, asset_id: str) -> None:
        blob_path = self.asset_abspath(bucket, asset_id)
        meta_path = self._meta_path(blob_path)
        if not blob_path.exists() and not meta_path.exists():
            raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}")
        try:
            blob_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete media asset {bucket}/{asset_id}", exc) from exc

    def list_assets(self, bucket: str) -> list[str]:
        bucket_dir = self.base_dir / bucket
        if not bucket_dir.exists():
            return []
        return sorted(path.name[: -len(".json")] for path in bucket_dir.glob("*/*/*.json"))

    @staticmethod
    def _meta_path(blob_path: Path) -> Path:
        return blob_path.with_name(f"{blob_path.name}.json")

    @staticmethod
    def _signed_message(bucket: str, asset_id: str, width: int | None, height: int | None, expires: int) -> str:
        return f"{bucket}:{asset_id}:{width or ''}:{height or ''}:{expires}"

    @staticmethod
    def _thumbnail(asset: StoredAsset, width: int | None, height: int | None) -> tuple[bytes, str]:
        try:
            with Image.open(io.BytesIO(asset.data)) as im:
                fmt = im.format or "PNG"
                im.thumbnail((width or im.width, height or im.height))
                if fmt == "JPEG" and im.mode not in ("RGB", "L"):
                    im = im.convert("RGB")
                out = io.BytesIO()
                im.save(out, format=fmt)
        except (UnidentifiedImageError, OSError):
            return asset.data, asset.content_type
        return out.getvalue(), Image.MIME.get(fmt, asset.content_type)
