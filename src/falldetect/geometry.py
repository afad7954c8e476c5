"""Geometria da pose: ângulo do tronco, ângulo das pernas e confiança de queda.

Funções puras sobre uma `Pose`; pontos ausentes ou com baixa confiança
apenas desligam o termo correspondente (nunca geram erro).
"""

from __future__ import annotations

import math
from typing import NamedTuple, Optional

from falldetect.config import GeometryParams
from falldetect.pose import Pose, angle_at_vertex, midpoint

DEFAULT_PARAMS = GeometryParams()


class FallEstimate(NamedTuple):
    is_falling: bool
    confidence: float


def trunk_angle(pose: Pose) -> Optional[float]:
    """Ângulo do tronco em relação à vertical (graus). ~0 em pé, ~90 deitado."""
    neck = pose.neck
    if neck is None or not neck.valid:
        return None
    hip = midpoint(pose.left_hip, pose.right_hip)
    if hip is None:
        return None
    dx = hip.x - neck.x
    dy = hip.y - neck.y
    return abs(math.degrees(math.atan2(dx, dy)))


def leg_angle(pose: Pose) -> Optional[float]:
    """Média dos ângulos quadril-joelho-tornozelo; uma perna só, se for o caso."""
    left = angle_at_vertex(pose.left_hip, pose.left_knee, pose.left_ankle)
    right = angle_at_vertex(pose.right_hip, pose.right_knee, pose.right_ankle)
    if left is not None and right is not None:
        return (left + right) / 2.0
    return left if left is not None else right


def fall_confidence(pose: Pose, params: GeometryParams = DEFAULT_PARAMS) -> FallEstimate:
    confidence = 0.0

    trunk = trunk_angle(pose)
    if trunk is not None:
        trunk_factor = min(1.0, trunk / params.trunk_norm_deg)
        confidence += params.trunk_weight * trunk_factor

    leg = leg_angle(pose)
    if leg is not None:
        deviation = abs(leg - params.leg_norm_angle_deg) / params.leg_norm_range_deg
        leg_factor = 1.0 - min(1.0, deviation)
        confidence += params.leg_weight * (1.0 - leg_factor)

    return FallEstimate(confidence > params.fall_threshold, confidence)
