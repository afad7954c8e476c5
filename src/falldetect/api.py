import asyncio
import os
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .session import DetectionSession
from .signals.alerts import AlertState
from .utils.log import get_logger

LOG = get_logger("falldetect.api")

API_KEY = os.getenv("FALLDETECT_API_KEY", "dev-key")  # defina em prod!


class DetectionToggle(BaseModel):
    enabled: Optional[bool] = None  # None => inverte


class AlertOut(BaseModel):
    active: bool
    confidence: float
    status: str


def _frame_summary(session: DetectionSession):
    last = session.engine.last_frame
    return {
        "pose_falling": last.estimate.is_falling,
        "pose_confidence": last.estimate.confidence,
        "detections": [
            {"label": d.label, "confidence": d.confidence, "bbox": list(d.bbox)} for d in last.detections
        ],
    }


def create_app(session: DetectionSession, api_key: Optional[str] = None) -> FastAPI:
    key = api_key or API_KEY
    unsubscribe = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # desliga o ouvinte da sessão quando o app encerra
        for off in unsubscribe:
            off()
        unsubscribe.clear()

    app = FastAPI(title="Fall Detection Control API", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.session = session

    subscribers: List[Tuple[WebSocket, asyncio.AbstractEventLoop]] = []

    def require_api_key(x_api_key: str = Header(None, alias="X-API-Key")):
        if x_api_key != key:
            raise HTTPException(status_code=401, detail="invalid api key")

    async def _send(ws: WebSocket, payload):
        try:
            await ws.send_json(payload)
        except Exception as e:
            # conexão morta: remove do broadcast
            LOG.debug("websocket removido: %s", e)
            for item in list(subscribers):
                if item[0] is ws:
                    subscribers.remove(item)

    def on_alert(state: AlertState):
        # chamado na thread de inferência
        payload = {"event": "alert", "data": state.as_dict()}
        for ws, loop in list(subscribers):
            if loop.is_closed():
                continue
            asyncio.run_coroutine_threadsafe(_send(ws, payload), loop)

    unsubscribe.append(session.alerts.subscribe(on_alert))

    @app.get("/health")
    def health(): return {"ok": True}

    @app.get("/state", dependencies=[Depends(require_api_key)])
    def get_state():
        return {
            "alert": session.alert_state.as_dict(),
            "detecting": session.is_detecting,
            "streak": session.engine.streak,
            "threshold": session.engine.threshold,
            "last_frame": _frame_summary(session),
        }

    @app.post("/alert/cancel", response_model=AlertOut, dependencies=[Depends(require_api_key)])
    def cancel_alert():
        return session.cancel_alert().as_dict()

    @app.post("/alert/help", dependencies=[Depends(require_api_key)])
    def request_help():
        requested = session.request_help()
        return {"requested": requested, "alert": session.alert_state.as_dict()}

    @app.post("/detection", dependencies=[Depends(require_api_key)])
    def toggle_detection(body: DetectionToggle):
        return {"detecting": session.toggle_detection(body.enabled)}

    @app.websocket("/ws")
    async def ws_alerts(ws: WebSocket):
        await ws.accept()
        item = (ws, asyncio.get_running_loop())
        subscribers.append(item)
        await ws.send_json({"event": "state", "data": session.alert_state.as_dict()})
        try:
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            if item in subscribers:
                subscribers.remove(item)

    return app
