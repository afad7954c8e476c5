from typing import List

from ultralytics import YOLO

from falldetect.fusion import DetectedObject
from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.detector")


class FallClassifier:
    """Detector YOLO treinado com as classes de queda (ex.: "fall", "person")."""

    def __init__(self, model_path=None, conf=0.25, device="cpu", model=None):
        self.conf = conf
        self.device = device
        self.model = model
        if self.model is None and model_path:
            try:
                self.model = YOLO(model_path)
            except Exception as e:
                # sem modelo o detector só devolve listas vazias
                LOG.error("falha ao carregar detector %s: %s", model_path, e)
                self.model = None

    @property
    def loaded(self) -> bool:
        return self.model is not None

    def __call__(self, frame) -> List[DetectedObject]:
        return self.detect(frame)

    def detect(self, frame) -> List[DetectedObject]:
        if self.model is None:
            return []
        results = self.model.predict(frame, conf=self.conf, device=self.device, verbose=False)
        if not results:
            return []
        r0 = results[0]
        if r0.boxes is None or r0.boxes.conf is None or len(r0.boxes.conf) == 0:
            return []
        boxes = r0.boxes.xyxyn.cpu().numpy()
        confs = r0.boxes.conf.cpu().numpy()
        clss = r0.boxes.cls.cpu().numpy().astype(int)
        names = r0.names if isinstance(r0.names, dict) else {i: n for i, n in enumerate(r0.names)}
        dets = []
        for (x1, y1, x2, y2), cf, ci in zip(boxes, confs, clss):
            dets.append(DetectedObject(
                label=str(names.get(int(ci), "unknown")),
                confidence=float(cf),
                bbox=(float(x1), float(y1), float(x2 - x1), float(y2 - y1)),
            ))
        return dets
