# src/falldetect/pose.py
from __future__ import annotations
import math
from dataclasses import dataclass, fields
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

# confiança mínima para um ponto ser usado na geometria
VALID_CONFIDENCE = 0.5

JOINTS = (
    "nose", "neck",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
    "left_eye", "right_eye",
    "left_ear", "right_ear",
)

# COCO-17 (Ultralytics) -> nome da junta. Não há "neck" no COCO.
COCO_JOINTS = (
    "nose", "left_eye", "right_eye", "left_ear", "right_ear",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_hip", "right_hip",
    "left_knee", "right_knee", "left_ankle", "right_ankle",
)


@dataclass(frozen=True)
class Keypoint:
    position: Tuple[float, float]  # (x, y) normalizados 0..1, y para baixo
    confidence: float

    @property
    def x(self) -> float:
        return self.position[0]

    @property
    def y(self) -> float:
        return self.position[1]

    @property
    def valid(self) -> bool:
        return self.confidence > VALID_CONFIDENCE


def midpoint(a: Optional[Keypoint], b: Optional[Keypoint]) -> Optional[Keypoint]:
    if a is None or b is None or not a.valid or not b.valid:
        return None
    x = (a.x + b.x) / 2.0
    y = (a.y + b.y) / 2.0
    return Keypoint((x, y), min(a.confidence, b.confidence))


def angle_at_vertex(a: Optional[Keypoint], vertex: Optional[Keypoint],
                    c: Optional[Keypoint]) -> Optional[float]:
    """Ângulo ABC em graus (0..180), com B = vertex."""
    if a is None or vertex is None or c is None:
        return None
    if not (a.valid and vertex.valid and c.valid):
        return None
    v1x, v1y = a.x - vertex.x, a.y - vertex.y
    v2x, v2y = c.x - vertex.x, c.y - vertex.y
    dot = v1x * v2x + v1y * v2y
    cross = v1x * v2y - v1y * v2x
    return abs(math.degrees(math.atan2(cross, dot)))


@dataclass(frozen=True)
class Pose:
    """Pose de um frame. Nunca é alterada, só substituída pela próxima."""
    nose: Optional[Keypoint] = None
    neck: Optional[Keypoint] = None
    left_shoulder: Optional[Keypoint] = None
    right_shoulder: Optional[Keypoint] = None
    left_elbow: Optional[Keypoint] = None
    right_elbow: Optional[Keypoint] = None
    left_wrist: Optional[Keypoint] = None
    right_wrist: Optional[Keypoint] = None
    left_hip: Optional[Keypoint] = None
    right_hip: Optional[Keypoint] = None
    left_knee: Optional[Keypoint] = None
    right_knee: Optional[Keypoint] = None
    left_ankle: Optional[Keypoint] = None
    right_ankle: Optional[Keypoint] = None
    left_eye: Optional[Keypoint] = None
    right_eye: Optional[Keypoint] = None
    left_ear: Optional[Keypoint] = None
    right_ear: Optional[Keypoint] = None

    def get(self, joint: str) -> Optional[Keypoint]:
        if joint not in JOINTS:
            raise KeyError(joint)
        return getattr(self, joint)

    def items(self):
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def valid_joints(self) -> Dict[str, Keypoint]:
        return {name: kp for name, kp in self.items() if kp is not None and kp.valid}

    @property
    def is_empty(self) -> bool:
        return all(kp is None for _, kp in self.items())

    @classmethod
    def from_points(cls, points: Mapping[str, Keypoint]) -> "Pose":
        """Monta a pose; sem "neck" explícito, usa o ponto médio dos ombros."""
        unknown = set(points) - set(JOINTS)
        if unknown:
            raise KeyError(f"juntas desconhecidas: {sorted(unknown)}")
        kps = {k: v for k, v in points.items() if v is not None}
        if kps.get("neck") is None:
            neck = midpoint(kps.get("left_shoulder"), kps.get("right_shoulder"))
            if neck is not None:
                kps["neck"] = neck
        return cls(**kps)

    @classmethod
    def from_coco(cls, kpts: np.ndarray, width: Optional[float] = None,
                  height: Optional[float] = None) -> "Pose":
        """
        kpts: (17,3) x,y,conf no formato COCO (Ultralytics).
        Com width/height, x,y estão em pixels e são normalizados para 0..1.
        Pontos com conf <= 0 são tratados como ausentes.
        """
        arr = np.asarray(kpts, dtype=np.float64)
        if arr.ndim == 3:
            arr = arr[0]
        if arr.shape[0] < len(COCO_JOINTS) or arr.shape[1] < 2:
            raise ValueError(f"esperado (17,3), recebido {arr.shape}")
        sx = float(width) if width else 1.0
        sy = float(height) if height else 1.0
        points = {}
        for i, name in enumerate(COCO_JOINTS):
            conf = float(arr[i, 2]) if arr.shape[1] > 2 else 1.0
            if conf <= 0.0:
                continue
            points[name] = Keypoint((float(arr[i, 0]) / sx, float(arr[i, 1]) / sy), conf)
        return cls.from_points(points)
