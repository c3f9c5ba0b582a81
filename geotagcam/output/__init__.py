"""
출력 모듈 패키지

공통 데이터 타입:
- DownloadArtifact: 다운로드용 파일 (이름, MIME, 바이트)
- PublishedPhoto: 현재 게시 중인 결과 (미리보기 핸들 + 다운로드 파일)
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DownloadArtifact:
    """
    다운로드용 파일입니다.

    필드:
        filename: 고정 파일 이름 (예: "geotagged_photo.jpg")
        mime_type: 예) "image/jpeg"
        data: 인코딩된 이미지 바이트
    """
    filename: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class PublishedPhoto:
    """
    게시된 촬영 결과입니다. 한 번에 하나만 유효합니다.

    필드:
        preview_handle: 인라인 미리보기용 data URI
        download: 다운로드 파일
        published_at: 게시 시각 (timezone-aware)
        sequence: 세션 내 게시 순번 (1부터)
        width, height: 이미지 크기
    """
    preview_handle: str
    download: DownloadArtifact
    published_at: datetime
    sequence: int
    width: int
    height: int
