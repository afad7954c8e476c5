from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.alerts")

IDLE = "idle"
ALERTED = "alerted"


@dataclass(frozen=True)
class AlertState:
    active: bool = False
    confidence: float = 0.0

    @property
    def status(self) -> str:
        return ALERTED if self.active else IDLE

    def as_dict(self):
        return {"active": self.active, "confidence": self.confidence, "status": self.status}


Listener = Callable[[AlertState], None]


class AlertStateMachine:
    """
    Estado do alerta de queda (idle / alerted).

    Único dono do AlertState. Transições:
      trigger()      idle -> alerted, ou atualiza a confiança se já alertado
      cancel()       alerted -> idle (confiança 0) + hooks de cancelamento
      request_help() alerted -> alerted, só avisa os ouvintes de ajuda
    Os ouvintes recebem snapshots imutáveis, em ordem, sob o mesmo lock.
    """

    def __init__(self):
        self.lock = threading.RLock()  # compartilhado com o FusionEngine
        self._state = AlertState()
        self._listeners: List[Listener] = []
        self._help_listeners: List[Listener] = []
        self._cancel_hooks: List[Callable[[], None]] = []

    @property
    def state(self) -> AlertState:
        with self.lock:
            return self._state

    @property
    def status(self) -> str:
        return self.state.status

    def subscribe(self, fn: Listener) -> Callable[[], None]:
        """Registra um ouvinte de mudanças; retorna a função para cancelar o registro."""
        with self.lock:
            self._listeners.append(fn)
        return lambda: self._remove(self._listeners, fn)

    def subscribe_help(self, fn: Listener) -> Callable[[], None]:
        with self.lock:
            self._help_listeners.append(fn)
        return lambda: self._remove(self._help_listeners, fn)

    def on_cancel(self, hook: Callable[[], None]) -> None:
        with self.lock:
            self._cancel_hooks.append(hook)

    def _remove(self, items, fn):
        with self.lock:
            if fn in items:
                items.remove(fn)

    def _notify(self, listeners: List[Listener], state: AlertState) -> None:
        for fn in list(listeners):
            try:
                fn(state)
            except Exception:
                LOG.exception("ouvinte de alerta falhou: %r", fn)

    def trigger(self, confidence: float, source: str = "unknown") -> AlertState:
        with self.lock:
            was_active = self._state.active
            self._state = AlertState(active=True, confidence=float(confidence))
            if not was_active:
                LOG.info({"event": "fall_alert", "source": source, "confidence": round(float(confidence), 4)})
            else:
                LOG.debug("alerta ativo, confiança atualizada: %.3f (%s)", confidence, source)
            self._notify(self._listeners, self._state)
            return self._state

    def cancel(self) -> AlertState:
        with self.lock:
            was_active = self._state.active
            self._state = AlertState()
            for hook in list(self._cancel_hooks):
                hook()
            if was_active:
                LOG.info({"event": "alert_cancelled"})
                self._notify(self._listeners, self._state)
            return self._state

    def request_help(self) -> bool:
        """Sinal lógico de pedido de ajuda. Não altera o estado do alerta."""
        with self.lock:
            state = self._state
            if not state.active:
                LOG.warning("pedido de ajuda ignorado: nenhum alerta ativo")
                return False
            LOG.info({"event": "help_requested", "confidence": round(state.confidence, 4)})
            listeners = list(self._help_listeners)
        # fora do lock: o webhook faz I/O de rede
        self._notify(listeners, state)
        return True


class HelpWebhook:
    """Ouvinte de ajuda que publica o pedido num webhook (desligado sem URL)."""

    def __init__(self, url: Optional[str], timeout: float = 4.0):
        self.url = url
        self.timeout = timeout
        self.enabled = bool(url)

    def __call__(self, state: AlertState):
        if not self.enabled:
            return None
        payload = {"type": "help_requested", "ts": int(time.time()), "confidence": state.confidence}
        try:
            r = requests.post(self.url, json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            LOG.error("falha ao publicar pedido de ajuda em %s: %s", self.url, e)
            return None
        return r.status_code
