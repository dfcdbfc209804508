"""Thumbnail cache backed by Pillow (images, cover art) and ffmpeg (video frames)."""

import hashlib
import io
import logging
import shutil
import subprocess
from pathlib import Path

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)


class ThumbnailCache:
    """Writes bounded PNG thumbnails into one cache directory.

    Every failure is logged and reported as ``None``; a missing thumbnail
    never fails extraction.
    """

    def __init__(self, directory: Path, size: int = 256, ffmpeg_timeout: float = 30.0):
        self.directory = Path(directory)
        self.size = size
        self.ffmpeg_timeout = ffmpeg_timeout

    def path_for(self, source: str | Path) -> Path:
        """Cache file for ``source``: ``<hash>_<stem>.png``."""
        source = Path(source)
        digest = hashlib.sha1(str(source).encode("utf-8", "surrogateescape")).hexdigest()[:16]
        return self.directory / f"{digest}_{source.stem}.png"

    def _save(self, image: Image.Image, target: Path) -> None:
        image = ImageOps.exif_transpose(image)
        image.thumbnail((self.size, self.size))
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        self.directory.mkdir(parents=True, exist_ok=True)
        image.save(target, format="PNG")

    def from_image(self, source: str | Path) -> str | None:
        target = self.path_for(source)
        try:
            with Image.open(source) as image:
                self._save(image, target)
        except (OSError, Image.DecompressionBombError) as e:
            logger.warning("Thumbnail failed path=%s reason=%s", source, e)
            return None
        return str(target)

    def from_bytes(self, source: str | Path, data: bytes) -> str | None:
        """Thumbnail embedded artwork of ``source`` (e.g. an audio cover)."""
        target = self.path_for(source)
        try:
            with Image.open(io.BytesIO(data)) as image:
                self._save(image, target)
        except (OSError, Image.DecompressionBombError) as e:
            logger.warning("Cover art thumbnail failed path=%s reason=%s", source, e)
            return None
        return str(target)

    def from_video(self, source: str | Path, duration: float | None) -> str | None:
        """Grab one frame a tenth of the way into the video with ffmpeg."""
        ffmpeg = shutil.which("ffmpeg")
        if not ffmpeg:
            logger.debug("ffmpeg not found, no frame thumbnail for %s", source)
            return None

        target = self.path_for(source)
        self.directory.mkdir(parents=True, exist_ok=True)
        offset = (duration or 0) / 10
        cmd = [
            ffmpeg,
            "-v",
            "error",
            "-y",
            "-ss",
            f"{offset:.3f}",
            "-i",
            str(source),
            "-frames:v",
            "1",
            "-vf",
            f"scale={self.size}:{self.size}:force_original_aspect_ratio=decrease",
            str(target),
        ]
        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, check=False, timeout=self.ffmpeg_timeout
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.warning("Frame grab failed path=%s reason=%s", source, e)
            return None

        if proc.returncode != 0 or not target.exists():
            logger.warning("Frame grab failed path=%s reason=%s", source, proc.stderr.strip())
            return None
        return str(target)
