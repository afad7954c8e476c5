"""Sessão de detecção: laço de frames + inferências assíncronas."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from falldetect.fusion import DetectedObject, FusionEngine
from falldetect.pose import Pose
from falldetect.signals.alerts import AlertState
from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.session")

Detector = Callable[[object], List[DetectedObject]]
PoseFn = Callable[[object], Optional[Pose]]

DETECTOR = "detector"
POSE = "pose"


class DetectionSession:
    """
    Puxa o frame mais recente da fonte a cada tick e dispara detector e pose
    em paralelo (ThreadPoolExecutor). Se a inferência anterior do mesmo tipo
    ainda não terminou, o frame atual é ignorado para aquele tipo.
    Falhas de inferência viram "sem detecção neste frame".
    Parar a sessão não mexe no estado do alerta.
    """

    def __init__(self, source, detector: Optional[Detector], pose_estimator: Optional[PoseFn],
                 engine: FusionEngine, target_fps: float = 15.0, idle_sleep: float = 0.005,
                 join_timeout: float = 2.0):
        self.source = source
        self.detector = detector
        self.pose_estimator = pose_estimator
        self.engine = engine
        self.alerts = engine.alerts
        self.period = 1.0 / max(1e-3, float(target_fps))
        self.idle_sleep = idle_sleep
        self.join_timeout = join_timeout

        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="infer")
        self._lock = threading.Lock()
        self._inflight = {DETECTOR: None, POSE: None}
        self._generation = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._latest_frame = None
        self.frames_seen = 0
        self.dropped = {DETECTOR: 0, POSE: 0}

    # ---------------------------------------------------------------- estado
    @property
    def is_detecting(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    @property
    def latest_frame(self):
        return self._latest_frame

    @property
    def alert_state(self) -> AlertState:
        return self.alerts.state

    # ------------------------------------------------------- ações do usuário
    def cancel_alert(self) -> AlertState:
        return self.alerts.cancel()

    def request_help(self) -> bool:
        return self.alerts.request_help()

    def toggle_detection(self, enabled: Optional[bool] = None) -> bool:
        """Liga/desliga o laço de frames. Sem argumento, inverte o estado atual."""
        if enabled is None:
            enabled = not self.is_detecting
        if enabled:
            self.start()
        else:
            self.stop()
        return self.is_detecting

    def start(self) -> None:
        if self.is_detecting:
            return
        with self._lock:
            self._generation += 1
        # um Event por execução: um laço antigo que ainda não saiu não é reativado
        stop = threading.Event()
        self._stop = stop
        if hasattr(self.source, "start"):
            self.source.start()
        self._thread = threading.Thread(target=self._run, args=(stop,), name="detection-loop", daemon=True)
        self._thread.start()
        LOG.info({"event": "detection_started"})

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        # espera um _apply em andamento; depois disso resultados em voo são descartados
        with self.alerts.lock, self._lock:
            self._generation += 1
        self._thread.join(timeout=self.join_timeout)
        if self._thread.is_alive():
            LOG.warning("laço de detecção ainda não terminou; sairá no próximo tick")
        self._thread = None
        LOG.info({"event": "detection_stopped", "frames": self.frames_seen})

    def close(self) -> None:
        self.stop()
        self._executor.shutdown(wait=True)
        if hasattr(self.source, "stop"):
            self.source.stop()

    # ----------------------------------------------------------------- laço
    def _next_frame(self):
        item = self.source.read()
        if item is None:
            return None
        if isinstance(item, tuple):
            return item[0]
        return item

    def _run(self, stop: threading.Event) -> None:
        last = 0.0
        while not stop.is_set():
            # ritmo antes da leitura: o frame enviado é sempre o mais novo
            wait = self.period - (time.time() - last)
            if wait > 0:
                stop.wait(wait)
                continue
            frame = self._next_frame()
            if stop.is_set():
                break
            if frame is None:
                time.sleep(self.idle_sleep)
                continue
            last = time.time()
            self.submit(frame)

    def submit(self, frame) -> None:
        """Envia um frame às duas inferências (assíncrono)."""
        self._latest_frame = frame
        self.frames_seen += 1
        with self._lock:
            gen = self._generation
        if self.detector is not None:
            self._submit_one(DETECTOR, self.detector, frame, gen)
        if self.pose_estimator is not None:
            self._submit_one(POSE, self.pose_estimator, frame, gen)

    def _submit_one(self, kind: str, fn, frame, gen: int) -> None:
        with self._lock:
            busy = self._inflight[kind]
            if busy is not None and not busy.done():
                self.dropped[kind] += 1
                return
            fut = self._executor.submit(fn, frame)
            self._inflight[kind] = fut
        fut.add_done_callback(lambda f: self._deliver(kind, f, gen))

    def _deliver(self, kind: str, fut: Future, gen: int) -> None:
        try:
            result = fut.result()
        except Exception:
            LOG.exception("inferência %s falhou; frame ignorado", kind)
            result = None
        # checagem da geração e aplicação sob o lock do alerta: stop() não passa no meio
        with self.alerts.lock:
            with self._lock:
                if gen != self._generation:
                    return
            self._apply(kind, result)

    def _apply(self, kind: str, result) -> None:
        if kind == DETECTOR:
            self.engine.on_detections(result or [])
        else:
            self.engine.on_pose(result)

    # ------------------------------------------------------------- síncrono
    def process_frame(self, frame) -> None:
        """Processa um frame no thread atual (testes, processamento offline)."""
        self._latest_frame = frame
        self.frames_seen += 1
        for kind, fn in ((DETECTOR, self.detector), (POSE, self.pose_estimator)):
            if fn is None:
                continue
            try:
                result = fn(frame)
            except Exception:
                LOG.exception("inferência %s falhou; frame ignorado", kind)
                result = None
            self._apply(kind, result)
