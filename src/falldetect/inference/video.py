import threading
import time

import cv2

from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.video")


class VideoSource:
    """
    Fonte de frames (câmera ou arquivo). Uma thread lê continuamente e guarda
    só o frame mais recente; read() devolve esse frame e descarta os atrasados.
    Arquivos voltam ao início no fim quando loop=True.
    """

    def __init__(self, source, target_fps=15, loop=True, reconnect_delay_s=3):
        self.uri = source
        if str(self.uri).isdigit():
            self.uri = int(self.uri)
        self.is_file = not isinstance(self.uri, int)
        self.loop = loop
        self.target_dt = 1.0 / float(target_fps)
        self.reconnect_delay = reconnect_delay_s
        self.cap = None
        self._lock = threading.Lock()
        self._latest = None
        self._seq = 0
        self._read_seq = 0
        self._stop = threading.Event()
        self._thread = None
        self._open()

    def _open(self):
        if self.cap: self.cap.release()
        self.cap = cv2.VideoCapture(self.uri)
        if not self.cap.isOpened():
            raise RuntimeError(f"Falha ao abrir fonte: {self.uri}")

    def _grab(self):
        ok, frame = self.cap.read()
        if ok:
            return frame
        if self.is_file and self.loop:
            LOG.info("fim do vídeo, reiniciando: %s", self.uri)
            self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = self.cap.read()
            return frame if ok else None
        if self.is_file:
            return None
        LOG.warning("sem frame da câmera %s, reconectando em %ss", self.uri, self.reconnect_delay)
        time.sleep(self.reconnect_delay)
        try:
            self._open()
        except RuntimeError as e:
            LOG.error("%s", e)
        return None

    def _run(self):
        while not self._stop.is_set():
            t0 = time.time()
            frame = self._grab()
            if frame is None and self.is_file and not self.loop:
                break
            if frame is not None:
                with self._lock:
                    self._latest = (frame, t0)
                    self._seq += 1
            dt = time.time() - t0
            if dt < self.target_dt:
                time.sleep(self.target_dt - dt)

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="video-source", daemon=True)
            self._thread.start()
        return self

    def read(self):
        """(frame, ts) mais recente ainda não lido, ou None."""
        with self._lock:
            if self._latest is None or self._seq == self._read_seq:
                return None
            self._read_seq = self._seq
            return self._latest

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        if self.cap:
            self.cap.release()
