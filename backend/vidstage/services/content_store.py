"""
Filesystem content store for vidstage.

Stores uploaded media, thumbnails and HLS output under a single root
directory with path traversal protection. Blocking file I/O runs in a
worker thread so handlers never stall the event loop.
"""
import asyncio
import shutil
from pathlib import Path

from vidstage.services.base import ContentStore


class LocalContentStore(ContentStore):
    """
    Content store backed by a local directory.

    Layout used by the pipeline:
    - {root}/uploads/ - Source media
    - {root}/thumbnails/{video_id}.png - Extracted thumbnails
    - {root}/hls/{video_id}/{quality}/ - Variant playlists and segments
    - {root}/hls/{video_id}/master.m3u8 - Master manifest
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """
        Resolve a store-relative path to an absolute filesystem path.

        Raises:
            ValueError: If path escapes the store root (traversal attack)
        """
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise ValueError(f"Invalid content path: {path}")
        return target

    async def fetch(self, path: str) -> bytes:
        target = self.resolve(path)
        return await asyncio.to_thread(target.read_bytes)

    async def put(self, path: str, data: bytes) -> str:
        target = self.resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never observe a partial blob
            tmp = target.with_name(target.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(target)

        await asyncio.to_thread(_write)
        return path

    async def delete(self, path: str) -> None:
        target = self.resolve(path)

        def _delete() -> None:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)

        await asyncio.to_thread(_delete)

    async def move(self, src: str, dst: str) -> str:
        source = self.resolve(src)
        target = self.resolve(dst)

        def _move() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            source.replace(target)

        await asyncio.to_thread(_move)
        return dst

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).exists)
