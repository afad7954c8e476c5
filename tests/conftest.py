import math
import pytest

from falldetect.pose import Keypoint, Pose


def kp(x, y, c=0.9):
    return Keypoint((x, y), c)


def build_pose(trunk_deg=None, leg_deg=None, legs=("left", "right"), conf=0.9):
    """Pose sintética com ângulo de tronco e de perna conhecidos."""
    pts = {}
    if trunk_deg is not None:
        t = math.radians(trunk_deg)
        nx, ny = 0.5, 0.3
        hx, hy = nx + 0.2 * math.sin(t), ny + 0.2 * math.cos(t)
        pts["neck"] = kp(nx, ny, conf)
        pts["left_hip"] = kp(hx - 0.02, hy, conf)
        pts["right_hip"] = kp(hx + 0.02, hy, conf)
    if leg_deg is not None:
        phi = math.radians(180.0 - leg_deg)
        for i, side in enumerate(legs):
            base_x = 0.3 + 0.4 * i
            hip = pts.get(f"{side}_hip") or kp(base_x, 0.5, conf)
            knee = kp(hip.x, hip.y + 0.2, conf)
            ankle = kp(knee.x + 0.2 * math.sin(phi), knee.y + 0.2 * math.cos(phi), conf)
            pts[f"{side}_hip"] = hip
            pts[f"{side}_knee"] = knee
            pts[f"{side}_ankle"] = ankle
    return Pose.from_points(pts)


@pytest.fixture
def make_pose():
    return build_pose


@pytest.fixture
def falling_pose():
    # tronco 90°, pernas 90° -> ~0.943
    return build_pose(90, 90)


@pytest.fixture
def upright_pose():
    return build_pose(0, 150)
