from __future__ import annotations
from typing import Iterable, Optional

import cv2
import numpy as np

from falldetect.fusion import DetectedObject
from falldetect.pose import Pose
from falldetect.signals.alerts import AlertState

# pares de juntas do esqueleto desenhado
SKELETON = [
    ("neck", "nose"),
    ("neck", "left_shoulder"), ("neck", "right_shoulder"),
    ("left_shoulder", "left_elbow"), ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"), ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"), ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"), ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"), ("right_knee", "right_ankle"),
    ("nose", "left_eye"), ("nose", "right_eye"),
    ("left_eye", "left_ear"), ("right_eye", "right_ear"),
]

ALERT_COLOR = (0, 0, 255)


def _color(label: str) -> tuple[int, int, int]:
    if label == "fall":
        return ALERT_COLOR
    h = sum(ord(c) for c in label) % 180  # hash() muda entre execuções
    c = np.uint8([[[h, 200, 255]]])  # HSV
    return tuple(int(x) for x in cv2.cvtColor(c, cv2.COLOR_HSV2BGR)[0, 0].tolist())


def draw_pose(frame, pose: Pose, color=(0, 255, 0), thickness: int = 2):
    h, w = frame.shape[:2]
    pts = {name: (int(kp.x * w), int(kp.y * h)) for name, kp in pose.valid_joints().items()}
    for a, b in SKELETON:
        if a in pts and b in pts:
            cv2.line(frame, pts[a], pts[b], (0, 255, 255), thickness)
    for p in pts.values():
        cv2.circle(frame, p, 3, color, -1)
    return frame


def draw_detections(frame, detections: Iterable[DetectedObject], thickness: int = 2,
                    font_scale: float = 0.6):
    h, w = frame.shape[:2]
    for det in detections:
        x, y, wr, hr = det.bbox
        x1 = int(x * w); y1 = int(y * h)
        x2 = int((x + wr) * w); y2 = int((y + hr) * h)
        color = _color(det.label)
        cv2.rectangle(frame, (x1, y1), (x2, y2), color, thickness)
        text = f"{det.label} {det.confidence:.2f}"
        (tw, th), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, font_scale, max(1, thickness-1))
        cv2.rectangle(frame, (x1, max(0, y1 - th - 6)), (x1 + tw + 6, y1), color, -1)
        cv2.putText(frame, text, (x1+3, y1-4), cv2.FONT_HERSHEY_SIMPLEX, font_scale,
                    (255, 255, 255), max(1, thickness-1), cv2.LINE_AA)
    return frame


def draw_overlay(frame, pose: Optional[Pose] = None,
                 detections: Iterable[DetectedObject] = (),
                 state: Optional[AlertState] = None,
                 show_pose: bool = True,
                 status: Optional[str] = None):
    """Desenha caixas, esqueleto (opcional) e a faixa de alerta numa cópia do frame."""
    out = frame.copy()
    draw_detections(out, detections)
    if show_pose and pose is not None:
        draw_pose(out, pose)
    h, w = out.shape[:2]
    if state is not None and state.active:
        cv2.rectangle(out, (0, 0), (w, 44), ALERT_COLOR, -1)
        cv2.putText(out, f"QUEDA DETECTADA  conf={state.confidence:.2f}", (10, 30),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)
    if status:
        cv2.putText(out, status, (10, h - 10), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (200, 200, 200), 1)
    return out
