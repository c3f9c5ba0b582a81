"""
세션 모듈 패키지

공통 데이터 타입:
- SessionStatus: UI 계층이 폴링하는 세션 상태 스냅샷
"""

from dataclasses import dataclass


@dataclass
class SessionStatus:
    """
    세션 상태 스냅샷입니다.

    필드:
        info_message: 진행 안내 메시지 (예: "위치 권한을 요청하는 중...")
        error_message: 마지막 에러 메시지 (없으면 "")
        phase: 현재 단계 ("idle" | "initializing" | "locating" | "ready" | "capturing")
        camera_ready: 프레임 소스 준비 여부
        position_ready: Position 확보 여부
        address_ready: AddressDetails 확보 여부
        capture_enabled: 촬영 가능 여부 (세 준비 조건이 모두 참일 때만 True)
        capture_in_progress: 촬영 진행 중 여부
        last_capture_at_ns: 마지막 촬영 완료 시각 (nanoseconds, 없으면 0)
        capture_count: 누적 촬영 횟수
        updated_at_ns: 상태 갱신 시각
    """
    info_message: str = ""
    error_message: str = ""
    phase: str = "idle"
    camera_ready: bool = False
    position_ready: bool = False
    address_ready: bool = False
    capture_enabled: bool = False
    capture_in_progress: bool = False
    last_capture_at_ns: int = 0
    capture_count: int = 0
    updated_at_ns: int = 0
