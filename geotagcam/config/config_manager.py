"""
GeoTag Camera 설정 관리 모듈입니다.

역할:
- YAML 설정 파일을 로드하고 Pydantic 스키마로 유효성 검증
- 환경변수 오버라이드 지원 (접두사: GTC_)
- dot-notation 기반 설정값 조회 (예: "location.timeout_ms")
- watchdog 기반 파일 변경 감지 및 핫스왑
- 설정 변경 시 구독자(콜백) 통보

사용 예시:
    >>> manager = ConfigManager()
    >>> config = manager.load("config.yaml")
    >>> zoom = manager.get("map.zoom")
    >>> manager.subscribe(lambda old, new: print("설정 변경됨"))
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from pydantic import BaseModel, ValidationError

from geotagcam.config.schema import AppConfig

logger = logging.getLogger(__name__)

# 환경변수 오버라이드 접두사
ENV_PREFIX = "GTC_"

# 설정 변경 콜백 타입: (이전 설정, 새 설정) -> None
ConfigChangeCallback = Callable[[AppConfig, AppConfig], None]


class ConfigLoadError(Exception):
    """설정 파일 로드 중 발생하는 에러의 기본 클래스입니다."""
    pass


class ConfigValidationError(ConfigLoadError):
    """설정 스키마 검증 실패 시 발생하는 에러입니다."""
    pass


class ConfigFileNotFoundError(ConfigLoadError):
    """설정 파일을 찾을 수 없을 때 발생하는 에러입니다."""
    pass


class ConfigManager:
    """
    YAML 설정 파일을 로드하고 관리하는 매니저 클래스입니다.

    역할:
    - YAML 파일 파싱 및 Pydantic 유효성 검증
    - 환경변수 오버라이드 (GTC_ 접두사, 스키마 필드 경로 기준 매칭)
    - dot-notation 설정값 조회
    - 파일 변경 감지(watchdog) 및 구독자 통보
    - 검증 실패 시 이전 설정 유지 (안전한 롤백)
    """

    def __init__(self) -> None:
        self._config: Optional[AppConfig] = None
        self._config_filepath: Optional[Path] = None
        self._subscribers: list[ConfigChangeCallback] = []
        self._lock: threading.RLock = threading.RLock()
        # watchdog Observer 인스턴스 (watch() 호출 시 생성)
        self._observer: Optional[Any] = None

    @property
    def config(self) -> Optional[AppConfig]:
        """현재 활성 설정 객체를 반환합니다."""
        with self._lock:
            return self._config

    def load(self, filepath: str | Path | None = None) -> AppConfig:
        """
        YAML 설정 파일을 로드하고 Pydantic 스키마로 검증합니다.

        filepath가 None이면 파일 없이 기본값 + 환경변수만으로 설정을 만듭니다.

        파라미터:
            filepath (str | Path | None): YAML 설정 파일 경로

        반환값:
            AppConfig: 검증 완료된 설정 객체

        에러:
            ConfigFileNotFoundError: 파일이 존재하지 않을 때
            ConfigValidationError: 스키마 검증 실패 시
            ConfigLoadError: YAML 파싱 실패 등 기타 에러
        """
        path = Path(filepath) if filepath is not None else None

        if path is not None and not path.exists():
            error_message = f"설정 파일을 찾을 수 없습니다: {path}"
            logger.error(error_message)
            raise ConfigFileNotFoundError(error_message)

        raw_config = self._parse_yaml_file(path) if path is not None else {}
        raw_config = self._apply_env_overrides(raw_config)
        validated_config = self._validate_config(raw_config)

        with self._lock:
            self._config = validated_config
            self._config_filepath = path

        logger.info(
            f"설정 로드 성공: source={path or '(defaults)'}, "
            f"mode={validated_config.system.mode}, "
            f"location_backend={validated_config.location.backend}, "
            f"map_zoom={validated_config.map.zoom}"
        )
        return validated_config

    def get(self, key: str, default: Any = None) -> Any:
        """
        dot-notation으로 설정값을 조회합니다.

        예: "camera.still_image.image_path" -> config.camera.still_image.image_path

        에러:
            RuntimeError: 설정이 로드되지 않은 상태에서 호출 시
        """
        with self._lock:
            if self._config is None:
                raise RuntimeError("설정이 아직 로드되지 않았습니다. load()를 먼저 호출하세요.")

            current_value: Any = self._config
            for part in key.split("."):
                if isinstance(current_value, BaseModel) and part in type(current_value).model_fields:
                    current_value = getattr(current_value, part)
                elif isinstance(current_value, dict) and part in current_value:
                    current_value = current_value[part]
                else:
                    logger.debug(f"설정 키 '{key}'에서 '{part}' 부분을 찾을 수 없음, 기본값 반환")
                    return default
            return current_value

    def subscribe(self, callback: ConfigChangeCallback) -> None:
        """설정 핫스왑 시 (이전_설정, 새_설정)으로 호출될 콜백을 등록합니다."""
        self._subscribers.append(callback)
        logger.info(f"설정 변경 구독자 등록 완료 (총 {len(self._subscribers)}명)")

    def unsubscribe(self, callback: ConfigChangeCallback) -> None:
        """등록된 설정 변경 콜백을 제거합니다."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            logger.warning("제거할 구독자를 찾을 수 없습니다")

    def watch(self, filepath: str | Path | None = None) -> None:
        """
        watchdog으로 설정 파일 변경을 감시합니다.

        파일이 수정되면 리로드하고, 검증 통과 시 구독자들에게 통보합니다.
        watchdog이 설치되어 있지 않으면 경고만 남기고 감시하지 않습니다.
        """
        watch_path = Path(filepath) if filepath else self._config_filepath
        if watch_path is None:
            logger.warning("감시할 설정 파일이 없습니다 (기본값으로 로드됨)")
            return

        try:
            from watchdog.events import FileSystemEventHandler
            from watchdog.observers import Observer
        except ImportError:
            logger.warning(
                "watchdog 라이브러리가 설치되지 않아 파일 감시를 시작할 수 없습니다. "
                "pip install watchdog 으로 설치하세요."
            )
            return

        manager = self
        target_filename = watch_path.name

        class _ConfigFileHandler(FileSystemEventHandler):
            """설정 파일 수정 이벤트만 골라 리로드를 요청합니다."""

            def on_modified(self, event: Any) -> None:
                if event.is_directory:
                    return
                if Path(event.src_path).name == target_filename:
                    manager._on_file_changed(event)

        observer = Observer()
        observer.schedule(_ConfigFileHandler(), path=str(watch_path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(f"설정 파일 감시 활성화 완료: {watch_path}")

    def stop_watch(self) -> None:
        """설정 파일 감시를 중지합니다."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
            logger.info("설정 파일 감시 중지 완료")

    def validate_schema(self, raw_config: dict) -> bool:
        """딕셔너리 데이터가 AppConfig 스키마를 만족하면 True를 반환합니다."""
        try:
            AppConfig(**raw_config)
            return True
        except ValidationError as validation_error:
            logger.warning(f"스키마 검증 실패: {validation_error}")
            return False

    # =========================================================================
    # 내부 메서드 (private)
    # =========================================================================

    def _parse_yaml_file(self, filepath: Path) -> dict:
        """
        YAML 파일을 읽어서 딕셔너리로 파싱합니다.

        에러:
            ConfigLoadError: 파일 읽기 또는 파싱 실패, 최상위 구조가 dict가 아닐 때
        """
        try:
            with open(filepath, "r", encoding="utf-8") as config_file:
                raw_data = yaml.safe_load(config_file)
        except yaml.YAMLError as yaml_error:
            error_message = f"YAML 파싱 에러: {yaml_error}"
            logger.error(error_message, exc_info=True)
            raise ConfigLoadError(error_message) from yaml_error
        except OSError as file_error:
            error_message = f"파일 읽기 에러: {file_error}"
            logger.error(error_message, exc_info=True)
            raise ConfigLoadError(error_message) from file_error

        if raw_data is None:
            logger.warning(f"설정 파일이 비어있습니다: {filepath}")
            return {}
        if not isinstance(raw_data, dict):
            raise ConfigLoadError(
                f"설정 파일의 최상위 구조가 딕셔너리가 아닙니다: {type(raw_data)}"
            )
        return raw_data

    def _apply_env_overrides(self, raw_config: dict) -> dict:
        """
        GTC_ 접두사 환경변수로 설정값을 오버라이드합니다.

        필드 이름에 언더스코어가 들어가므로 단순 분할 대신
        AppConfig 스키마를 따라 내려가며 가장 긴 필드 이름부터 매칭합니다.

        예:
            GTC_LOCATION_TIMEOUT_MS              -> location.timeout_ms
            GTC_CAMERA_STILL_IMAGE_IMAGE_PATH    -> camera.still_image.image_path
            GTC_DASHBOARD_WEB_PORT               -> dashboard.web.port
        """
        override_count = 0

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(ENV_PREFIX):
                continue

            field_path = _resolve_field_path(AppConfig, env_key[len(ENV_PREFIX):].lower())
            if field_path is None:
                logger.debug(f"환경변수 '{env_key}' 무시 (일치하는 설정 필드 없음)")
                continue

            target = raw_config
            for section in field_path[:-1]:
                if not isinstance(target.get(section), dict):
                    target[section] = {}
                target = target[section]

            converted_value = _convert_env_value(env_value)
            target[field_path[-1]] = converted_value
            override_count += 1

            logger.info(
                f"환경변수 오버라이드: {env_key} -> {'.'.join(field_path)} = {converted_value}"
            )

        if override_count > 0:
            logger.info(f"환경변수 오버라이드 적용 완료: {override_count}건")
        return raw_config

    def _validate_config(self, raw_config: dict) -> AppConfig:
        """
        딕셔너리를 Pydantic AppConfig 모델로 검증하고 변환합니다.

        에러:
            ConfigValidationError: Pydantic 검증 실패 시
        """
        try:
            return AppConfig(**raw_config)
        except ValidationError as validation_error:
            error_details = validation_error.errors()
            for error_detail in error_details:
                field_path = " -> ".join(str(loc) for loc in error_detail["loc"])
                logger.error(
                    f"설정 검증 실패 - 필드: {field_path}, "
                    f"에러: {error_detail['msg']}, "
                    f"입력값: {error_detail.get('input', 'N/A')}"
                )
            error_message = f"설정 스키마 검증 실패: {len(error_details)}개 에러 발생"
            raise ConfigValidationError(error_message) from validation_error

    def _on_file_changed(self, event: Any) -> None:
        """
        설정 파일 변경 감지 시 호출되는 핸들러입니다.

        검증에 실패하면 이전 설정을 그대로 유지합니다.
        """
        if self._config_filepath is None:
            return

        logger.info(f"설정 파일 변경 감지, 리로드 시작: {self._config_filepath}")

        try:
            raw_config = self._parse_yaml_file(self._config_filepath)
            raw_config = self._apply_env_overrides(raw_config)
            new_config = self._validate_config(raw_config)
        except ConfigLoadError as load_error:
            logger.error(f"설정 핫스왑 실패, 이전 설정을 유지합니다: {load_error}")
            return

        with self._lock:
            previous_config = self._config
            self._config = new_config

        logger.info("설정 핫스왑 성공: 새 설정이 적용되었습니다")
        if previous_config is not None:
            self._notify_subscribers(previous_config, new_config)

    def _notify_subscribers(self, previous_config: AppConfig, new_config: AppConfig) -> None:
        """
        등록된 모든 구독자에게 설정 변경을 통보합니다.

        개별 구독자의 콜백 에러는 다른 구독자 통보를 막지 않습니다.
        """
        for subscriber_index, callback in enumerate(self._subscribers):
            try:
                callback(previous_config, new_config)
            except Exception as callback_error:
                logger.error(
                    f"구독자 {subscriber_index + 1} 콜백 실행 중 에러: {callback_error}",
                    exc_info=True,
                )


# =============================================================================
# 모듈 레벨 헬퍼 함수
# =============================================================================

def _resolve_field_path(model: type[BaseModel], remainder: str) -> Optional[list[str]]:
    """
    "camera_still_image_image_path" 같은 문자열을 스키마 필드 경로로 변환합니다.

    반환값:
        list[str] | None: ["camera", "still_image", "image_path"] 또는 매칭 실패 시 None
    """
    # 긴 필드 이름을 먼저 시도해야 "still_image"가 "still"보다 우선함
    for field_name in sorted(model.model_fields, key=len, reverse=True):
        if remainder == field_name:
            return [field_name]
        if not remainder.startswith(field_name + "_"):
            continue
        annotation = model.model_fields[field_name].annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            nested = _resolve_field_path(annotation, remainder[len(field_name) + 1:])
            if nested is not None:
                return [field_name] + nested
    return None


def _convert_env_value(value: str) -> Any:
    """
    환경변수 문자열을 bool/int/float/str 중 적절한 타입으로 변환합니다.
    """
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value
