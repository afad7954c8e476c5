# src/falldetect/fusion.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from falldetect.config import FusionParams, GeometryParams
from falldetect.geometry import FallEstimate, fall_confidence
from falldetect.pose import Pose
from falldetect.signals.alerts import AlertState, AlertStateMachine
from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.fusion")

CLASSIFIER = "classifier"
POSE = "pose"


@dataclass(frozen=True)
class DetectedObject:
    label: str
    confidence: float
    bbox: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)  # x,y,w,h relativos


@dataclass
class FallDecisionState:
    consecutive_pose_fall_frames: int = 0
    threshold: int = 5


@dataclass(frozen=True)
class FrameResult:
    """Último resultado visto de cada fonte (para overlay / inspeção)."""
    detections: Tuple[DetectedObject, ...] = field(default_factory=tuple)
    pose: Optional[Pose] = None
    estimate: FallEstimate = FallEstimate(False, 0.0)


class FusionEngine:
    """
    Combina as duas fontes de evidência:
      - classificador: rótulo "fall" com conf > limiar alerta no mesmo frame;
      - pose: precisa de `threshold` frames seguidos caindo; um frame limpo zera.
    Usa o mesmo lock do AlertStateMachine, então a sequência
    contador -> alerta é atômica mesmo com callbacks concorrentes.
    """

    def __init__(self, alerts: AlertStateMachine, geometry: Optional[GeometryParams] = None,
                 params: Optional[FusionParams] = None):
        self.alerts = alerts
        self.geometry = geometry or GeometryParams()
        self.params = params or FusionParams()
        self._lock = alerts.lock
        self._decision = FallDecisionState(threshold=int(self.params.pose_frame_threshold))
        self._last = FrameResult()
        alerts.on_cancel(self.reset_streak)

    @property
    def streak(self) -> int:
        with self._lock:
            return self._decision.consecutive_pose_fall_frames

    @property
    def threshold(self) -> int:
        return self._decision.threshold

    @property
    def last_frame(self) -> FrameResult:
        with self._lock:
            return self._last

    def reset_streak(self) -> None:
        with self._lock:
            self._decision.consecutive_pose_fall_frames = 0

    def on_detections(self, objects: Optional[Sequence[DetectedObject]]) -> Optional[AlertState]:
        """Caminho do classificador. Retorna o estado se algum objeto disparou o alerta."""
        if objects is None:
            return None
        fired = None
        with self._lock:
            self._last = FrameResult(tuple(objects), self._last.pose, self._last.estimate)
            for obj in objects:
                if obj.label == self.params.fall_label and obj.confidence > self.params.classifier_threshold:
                    fired = self.alerts.trigger(obj.confidence, source=CLASSIFIER)
        return fired

    def on_pose(self, pose: Optional[Pose]) -> FallEstimate:
        """Caminho da pose, com debounce de frames consecutivos."""
        if pose is None:
            if self.params.reset_streak_on_missing_pose:
                self.reset_streak()
            return FallEstimate(False, 0.0)

        estimate = fall_confidence(pose, self.geometry)
        with self._lock:
            self._last = FrameResult(self._last.detections, pose, estimate)
            d = self._decision
            if not estimate.is_falling:
                d.consecutive_pose_fall_frames = 0
                return estimate
            d.consecutive_pose_fall_frames += 1
            LOG.debug("pose caindo: %d/%d conf=%.3f", d.consecutive_pose_fall_frames,
                      d.threshold, estimate.confidence)
            if d.consecutive_pose_fall_frames >= d.threshold:
                self.alerts.trigger(estimate.confidence, source=POSE)
        return estimate
