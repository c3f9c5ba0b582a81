"""
촬영 결과 게시 모듈입니다.

역할:
- CompositeImage를 미리보기 data URI + 고정 이름 다운로드 파일로 게시
- 새 결과가 오면 이전 결과를 통째로 교체 (항상 최대 1개)
- 명시적 요청(CLI --capture) 시에만 디스크에 저장

사용 예시:
    >>> publisher = PhotoPublisher(filename_stem="geotagged_photo")
    >>> photo = publisher.publish(composite)
    >>> photo.download.filename
    'geotagged_photo.jpg'
"""

from __future__ import annotations

import base64
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from geotagcam.compositor import CompositeImage
from geotagcam.output import DownloadArtifact, PublishedPhoto

logger = logging.getLogger(__name__)


class PhotoPublisher:
    """
    현재 촬영 결과 하나를 보관하고 내주는 클래스입니다.

    웹 서버 스레드와 이벤트 루프가 함께 읽으므로 Lock으로 보호합니다.
    """

    def __init__(self, filename_stem: str = "geotagged_photo") -> None:
        self._filename_stem = filename_stem
        self._lock = threading.Lock()
        self._current: Optional[PublishedPhoto] = None
        self._sequence: int = 0

    def publish(self, composite: CompositeImage) -> PublishedPhoto:
        """
        합성 결과를 게시하고 이전 결과를 교체합니다.

        반환값:
            PublishedPhoto: 새로 게시된 결과
        """
        encoded_b64 = base64.b64encode(composite.encoded).decode("ascii")
        download = DownloadArtifact(
            filename=f"{self._filename_stem}.{composite.extension}",
            mime_type=composite.mime_type,
            data=composite.encoded,
        )

        with self._lock:
            self._sequence += 1
            photo = PublishedPhoto(
                preview_handle=f"data:{composite.mime_type};base64,{encoded_b64}",
                download=download,
                published_at=datetime.now(timezone.utc),
                sequence=self._sequence,
                width=composite.width,
                height=composite.height,
            )
            replaced = self._current is not None
            self._current = photo

        logger.info(
            f"촬영 결과 게시: #{photo.sequence} {download.filename} "
            f"({len(download.data)} bytes, 이전 결과 교체={replaced})"
        )
        return photo

    def current(self) -> Optional[PublishedPhoto]:
        """현재 게시 중인 결과를 반환합니다. 없으면 None."""
        with self._lock:
            return self._current

    def save(self, directory: str | Path) -> Path:
        """
        현재 결과의 다운로드 파일을 디렉토리에 저장합니다.

        반환값:
            Path: 저장된 파일 경로

        에러:
            RuntimeError: 게시된 결과가 없을 때
            OSError: 파일 쓰기 실패 시
        """
        photo = self.current()
        if photo is None:
            raise RuntimeError("저장할 촬영 결과가 없습니다")

        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        target_path = target_dir / photo.download.filename
        target_path.write_bytes(photo.download.data)
        logger.info(f"촬영 결과 저장: {target_path}")
        return target_path

    def clear(self) -> None:
        """게시 중인 결과를 제거합니다."""
        with self._lock:
            self._current = None
        logger.debug("게시 결과 초기화")

    def set_filename_stem(self, filename_stem: str) -> None:
        """다음 게시부터 적용할 다운로드 파일 이름을 바꿉니다."""
        self._filename_stem = filename_stem
