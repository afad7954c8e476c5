import pytest
from fastapi.testclient import TestClient

from falldetect.api import create_app
from falldetect.fusion import DetectedObject, FusionEngine
from falldetect.session import DetectionSession
from falldetect.signals.alerts import AlertStateMachine

KEY = {"X-API-Key": "test-key"}


class EmptySource:
    def read(self):
        return None


@pytest.fixture
def session():
    s = DetectionSession(EmptySource(), None, None, FusionEngine(AlertStateMachine()))
    yield s
    s.close()


@pytest.fixture
def client(session):
    return TestClient(create_app(session, api_key="test-key"))


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_exige_api_key(client):
    assert client.get("/state").status_code == 401
    assert client.post("/alert/cancel", headers={"X-API-Key": "errada"}).status_code == 401


def test_state_cancel_e_ajuda(client, session):
    body = client.get("/state", headers=KEY).json()
    assert body["alert"] == {"active": False, "confidence": 0.0, "status": "idle"}
    assert body["streak"] == 0 and body["threshold"] == 5

    r = client.post("/alert/help", headers=KEY).json()
    assert r["requested"] is False

    session.engine.on_detections([DetectedObject("fall", 0.88, (0.1, 0.2, 0.3, 0.4))])
    body = client.get("/state", headers=KEY).json()
    assert body["alert"]["active"] is True
    assert body["alert"]["confidence"] == pytest.approx(0.88)
    assert body["last_frame"]["detections"][0]["label"] == "fall"

    r = client.post("/alert/help", headers=KEY).json()
    assert r["requested"] is True
    assert r["alert"]["active"] is True

    r = client.post("/alert/cancel", headers=KEY).json()
    assert r == {"active": False, "confidence": 0.0, "status": "idle"}


def test_toggle_detection(client, session):
    assert client.post("/detection", headers=KEY, json={"enabled": True}).json() == {"detecting": True}
    assert session.is_detecting
    assert client.post("/detection", headers=KEY, json={"enabled": False}).json() == {"detecting": False}
    assert client.post("/detection", headers=KEY, json={}).json() == {"detecting": True}
    session.stop()


def test_websocket_recebe_alerta(client, session):
    with client.websocket_connect("/ws") as ws:
        first = ws.receive_json()
        assert first == {"event": "state", "data": {"active": False, "confidence": 0.0, "status": "idle"}}
        session.alerts.trigger(0.77, source="classifier")
        msg = ws.receive_json()
        assert msg["event"] == "alert"
        assert msg["data"]["active"] is True
        assert msg["data"]["confidence"] == pytest.approx(0.77)


def test_encerrar_app_remove_ouvinte(session):
    app = create_app(session, api_key="test-key")
    assert len(session.alerts._listeners) == 1
    with TestClient(app) as c:
        assert c.get("/health").status_code == 200
    assert session.alerts._listeners == []
    session.alerts.trigger(0.9)  # sem ouvinte pendurado
