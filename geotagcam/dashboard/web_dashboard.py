"""
웹 대시보드 모듈입니다.

역할:
- FastAPI + WebSocket 기반 촬영 세션 원격 조작/모니터링
- 촬영/위치 재확인 버튼 대신 HTTP 요청으로 파이프라인 조작
- 게시된 사진을 미리보기(inline)와 다운로드(attachment)로 제공
- StatusStore를 refresh_interval_ms 주기로 폴링하여 WebSocket 클라이언트에게 브로드캐스트

엔드포인트:
    GET  /api/health        헬스체크
    GET  /api/status        현재 세션 상태 (JSON)
    POST /api/capture       사진 1장 촬영
    POST /api/locate        위치 → 주소 체인 재실행
    GET  /photo/preview     최근 사진 (inline)
    GET  /photo/download    최근 사진 (첨부 파일)
    WS   /ws/status         실시간 상태 스트림
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict
from typing import Optional, Set

logger = logging.getLogger(__name__)


class WebDashboard:
    """
    FastAPI 기반 촬영 세션 대시보드입니다.

    CapturePipeline의 StatusStore를 주기적으로 폴링하여 WebSocket 클라이언트에게 브로드캐스트합니다.
    """

    def __init__(
        self,
        pipeline,
        host: str = "0.0.0.0",
        port: int = 8765,
        refresh_interval_ms: int = 1000,
    ) -> None:
        self._pipeline = pipeline
        self._host = host
        self._port = port
        self._refresh_sec = max(refresh_interval_ms, 100) / 1000.0
        self._clients: Set = set()
        self._app = None
        self._server_task: Optional[asyncio.Task] = None
        self._broadcast_task: Optional[asyncio.Task] = None
        self._running = False

        self._build_app()

    @property
    def app(self):
        """FastAPI 앱 인스턴스 (TestClient 등 외부 ASGI 서버용)."""
        return self._app

    def _build_app(self) -> None:
        """FastAPI 앱과 라우트를 구성합니다."""
        try:
            from fastapi import FastAPI, WebSocket, WebSocketDisconnect
            from fastapi.responses import JSONResponse, Response
        except ImportError:
            raise RuntimeError(
                "fastapi와 uvicorn이 설치되어 있지 않습니다. "
                "pip install fastapi uvicorn 을 실행하세요."
            )

        # from __future__ import annotations 환경에서 FastAPI가 타입을
        # 문자열로 평가할 때 모듈 글로벌 네임스페이스에서 찾을 수 있도록 등록
        import sys as _sys
        _mod = _sys.modules[__name__]
        if not hasattr(_mod, "WebSocket"):
            _mod.WebSocket = WebSocket  # type: ignore[attr-defined]
        if not hasattr(_mod, "WebSocketDisconnect"):
            _mod.WebSocketDisconnect = WebSocketDisconnect  # type: ignore[attr-defined]

        app = FastAPI(title="GeoTag Camera Dashboard", docs_url=None, redoc_url=None)

        @app.get("/api/health")
        async def health():
            return JSONResponse(content={"status": "ok", "ts": time.time()})

        @app.get("/api/status")
        async def status():
            return JSONResponse(content=self._collect_status())

        @app.post("/api/capture")
        async def capture():
            photo = await self._pipeline.capture()
            if photo is None:
                current = self._pipeline.status_store.get_status()
                return JSONResponse(
                    status_code=409,
                    content={
                        "captured": False,
                        "message": current.error_message or current.info_message,
                    },
                )
            return JSONResponse(content={
                "captured": True,
                "sequence": photo.sequence,
                "filename": photo.download.filename,
                "width": photo.width,
                "height": photo.height,
            })

        @app.post("/api/locate")
        async def locate():
            located = await self._pipeline.locate()
            current = self._pipeline.status_store.get_status()
            return JSONResponse(
                status_code=200 if located else 409,
                content={
                    "located": located,
                    "message": current.error_message or current.info_message,
                },
            )

        @app.get("/photo/preview")
        async def photo_preview():
            photo = self._pipeline.publisher.current()
            if photo is None:
                return JSONResponse(status_code=404, content={"message": "아직 촬영된 사진이 없습니다."})
            return Response(
                content=photo.download.data,
                media_type=photo.download.mime_type,
                headers={"Cache-Control": "no-store"},
            )

        @app.get("/photo/download")
        async def photo_download():
            photo = self._pipeline.publisher.current()
            if photo is None:
                return JSONResponse(status_code=404, content={"message": "아직 촬영된 사진이 없습니다."})
            return Response(
                content=photo.download.data,
                media_type=photo.download.mime_type,
                headers={
                    "Content-Disposition": f'attachment; filename="{photo.download.filename}"',
                    "Cache-Control": "no-store",
                },
            )

        @app.websocket("/ws/status")
        async def ws_endpoint(websocket: WebSocket):
            await websocket.accept()
            self._clients.add(websocket)
            logger.debug("WebSocket 클라이언트 연결: %s", websocket.client)
            try:
                await websocket.send_text(json.dumps(self._collect_status()))
                while True:
                    # 클라이언트로부터 메시지를 받아도 무시 (ping 방지용 루프)
                    try:
                        await asyncio.wait_for(websocket.receive_text(), timeout=30)
                    except asyncio.TimeoutError:
                        pass
            except WebSocketDisconnect:
                pass
            finally:
                self._clients.discard(websocket)
                logger.debug("WebSocket 클라이언트 연결 종료")

        self._app = app

    def _collect_status(self) -> dict:
        """StatusStore, SessionContext, PhotoPublisher에서 현재 상태를 수집하여 dict로 반환합니다."""
        status = asdict(self._pipeline.status_store.get_status())
        context = self._pipeline.context

        position = context.position
        address = context.address
        photo = self._pipeline.publisher.current()

        return {
            "ts": time.time(),
            "status": status,
            "position": None if position is None else {
                "latitude": position.latitude,
                "longitude": position.longitude,
                "acquired_at": position.acquired_at.isoformat(),
            },
            "address": None if address is None else asdict(address),
            "photo": None if photo is None else {
                "sequence": photo.sequence,
                "filename": photo.download.filename,
                "mime_type": photo.download.mime_type,
                "width": photo.width,
                "height": photo.height,
                "published_at": photo.published_at.isoformat(),
            },
        }

    async def _broadcast_loop(self) -> None:
        """refresh 주기로 상태를 수집하여 모든 WebSocket 클라이언트에게 브로드캐스트합니다."""
        while self._running:
            try:
                if self._clients:
                    payload = json.dumps(self._collect_status())
                    dead = set()
                    for client in list(self._clients):
                        try:
                            await client.send_text(payload)
                        except Exception:
                            dead.add(client)
                    self._clients -= dead
            except Exception as exc:
                logger.warning("브로드캐스트 오류: %s", exc)
            await asyncio.sleep(self._refresh_sec)

    async def start(self) -> None:
        """대시보드 서버와 브로드캐스트 루프를 시작합니다."""
        try:
            import uvicorn
        except ImportError:
            raise RuntimeError("uvicorn이 설치되지 않았습니다. pip install uvicorn 을 실행하세요.")

        self._running = True
        self._broadcast_task = asyncio.create_task(self._broadcast_loop())

        config = uvicorn.Config(
            app=self._app,
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(server.serve())

        logger.info(
            "웹 대시보드 시작: http://%s:%d",
            "localhost" if self._host == "0.0.0.0" else self._host,
            self._port,
        )

    async def stop(self) -> None:
        """대시보드를 종료합니다."""
        self._running = False
        for task in (self._broadcast_task, self._server_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._broadcast_task = None
        self._server_task = None
        logger.info("웹 대시보드 종료")
