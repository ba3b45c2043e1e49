"""Live camera frame source using OpenCV."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """The camera could not be opened or did not deliver a frame."""


def _import_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install opencv-python"
        ) from None
    return cv2


class ScannerCamera:
    """Hold a video capture handle open and hand out frames.

    The handle is opened lazily on the first read and stays open until
    ``release()``; a released camera reopens on the next read.

    ``read()`` runs in a worker thread while ``release()`` is called from
    the event loop, so the handle is only touched under ``_lock``. A
    release that lands while ``open()`` is still waiting on the device
    wins: the late handle is discarded instead of installed.
    """

    def __init__(self, camera_index: int = 0, save_dir: str = "") -> None:
        self._camera_index = camera_index
        self._save_dir = Path(save_dir) if save_dir else None
        if self._save_dir is not None:
            self._save_dir.mkdir(parents=True, exist_ok=True)
        self._cap: Any = None
        self._lock = threading.Lock()
        self._releases = 0

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        with self._lock:
            if self._cap is not None:
                return
            releases = self._releases

        # Opening can block for a while; release() must not wait on it.
        cv2 = _import_cv2()
        cap = cv2.VideoCapture(self._camera_index)
        if not cap.isOpened():
            cap.release()
            raise CameraError(
                f"カメラ {self._camera_index} を開けませんでした。"
                f"接続を確認してください。"
            )

        with self._lock:
            if releases != self._releases:
                discard, installed = cap, False
            elif self._cap is not None:
                discard, installed = cap, True
            else:
                self._cap = cap
                discard, installed = None, True
        if discard is not None:
            discard.release()
        if not installed:
            raise CameraError(
                f"カメラ {self._camera_index} はオープン中に解放されました。"
            )
        if discard is None:
            logger.debug("カメラ %d を開きました", self._camera_index)

    def release(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
            self._releases += 1
        if cap is not None:
            cap.release()
            logger.debug("カメラ %d を解放しました", self._camera_index)

    def read(self) -> Any:
        """Read the current frame (BGR ndarray) synchronously."""
        self.open()
        with self._lock:
            cap = self._cap
            if cap is None:
                raise CameraError(
                    f"カメラ {self._camera_index} は解放されています。"
                )
            ret, frame = cap.read()
            if not ret or frame is None:
                # Drop the handle so the next read retries from scratch.
                self._cap = None
                cap.release()
                raise CameraError(
                    f"カメラ {self._camera_index} からフレームを取得できませんでした。"
                )
        return frame

    async def read_frame(self) -> Any:
        return await asyncio.to_thread(self.read)

    def encode_jpeg(self, frame: Any) -> bytes:
        """Freeze a frame as JPEG bytes, saving a copy if ``save_dir`` is set."""
        cv2 = _import_cv2()
        ok, buf = cv2.imencode(".jpg", frame)
        if not ok:
            raise CameraError("フレームをJPEGに変換できませんでした。")
        data = buf.tobytes()

        if self._save_dir is not None:
            now = datetime.now(timezone.utc)
            filename = f"cam{self._camera_index}_{now.strftime('%Y%m%d_%H%M%S_%f')}.jpg"
            (self._save_dir / filename).write_bytes(data)
        return data

    def __enter__(self) -> ScannerCamera:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @staticmethod
    def list_cameras(max_check: int = 10) -> list[int]:
        """List available camera indices by probing."""
        cv2 = _import_cv2()

        available: list[int] = []
        for i in range(max_check):
            cap = cv2.VideoCapture(i)
            if cap.isOpened():
                available.append(i)
            cap.release()
        return available
