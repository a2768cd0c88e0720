import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))


class LocalAttachmentStore:
    """Resolves attachment references to files under the upload directory.

    References are opaque strings such as ``/uploads/trades/trade-123.png``;
    only their basename and first directory under ``uploads`` are used.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def _path_for(self, ref: str) -> Path | None:
        parts = [p for p in ref.replace("\\", "/").split("/") if p and p not in {".", ".."}]
        if parts and parts[0] in {"uploads", "api"}:
            parts = parts[1:]
        if not parts:
            return None
        return self.base_dir.joinpath(*parts)

    def release(self, refs: list[str]) -> int:
        """Best-effort removal. Returns how many files were deleted."""
        removed = 0
        for ref in refs or []:
            if not isinstance(ref, str):
                continue
            path = self._path_for(ref)
            if path is None:
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError:
                logger.warning("attachment_release_failed ref=%s", ref, exc_info=True)
        return removed


attachment_store = LocalAttachmentStore(UPLOAD_DIR)
