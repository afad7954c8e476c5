import pytest

from falldetect.config import GeometryParams
from falldetect.geometry import fall_confidence, leg_angle, trunk_angle
from falldetect.pose import Keypoint, Pose


def test_pose_vazia_nao_cai():
    assert fall_confidence(Pose()) == (False, 0.0)


def test_trunk_angle_em_pe_e_deitado(make_pose):
    assert trunk_angle(make_pose(0)) == pytest.approx(0.0, abs=1e-9)
    assert trunk_angle(make_pose(90)) == pytest.approx(90.0)
    assert trunk_angle(make_pose(45)) == pytest.approx(45.0)


def test_trunk_angle_sem_pescoco_ou_quadril():
    hips = {"left_hip": Keypoint((0.4, 0.6), 0.9), "right_hip": Keypoint((0.6, 0.6), 0.9)}
    assert trunk_angle(Pose.from_points(hips)) is None
    neck = Keypoint((0.5, 0.3), 0.9)
    assert trunk_angle(Pose.from_points({"neck": neck})) is None
    # um quadril inválido já basta para desligar
    assert trunk_angle(Pose.from_points({
        "neck": neck, "left_hip": Keypoint((0.4, 0.6), 0.9), "right_hip": Keypoint((0.6, 0.6), 0.4),
    })) is None


def test_leg_angle_media_das_duas_pernas(make_pose):
    both = make_pose(leg_deg=120)
    assert leg_angle(both) == pytest.approx(120.0)

    left = make_pose(leg_deg=100, legs=("left",))
    right = make_pose(leg_deg=160, legs=("right",))
    mixed = Pose.from_points({**left.valid_joints(), **right.valid_joints()})
    assert leg_angle(mixed) == pytest.approx(130.0)


def test_leg_angle_uma_perna(make_pose):
    assert leg_angle(make_pose(leg_deg=110, legs=("right",))) == pytest.approx(110.0)
    assert leg_angle(make_pose(trunk_deg=0)) is None


def test_exemplo_tronco_80_perna_150(make_pose):
    is_falling, conf = fall_confidence(make_pose(80, 150))
    assert conf == pytest.approx(0.6)
    assert not is_falling


def test_exemplo_tronco_90_perna_90(falling_pose):
    is_falling, conf = fall_confidence(falling_pose)
    assert conf == pytest.approx(0.6 + 0.4 * 60 / 70)
    assert conf == pytest.approx(0.943, abs=1e-3)
    assert is_falling


def test_so_perna_nunca_passa_do_limiar(make_pose):
    is_falling, conf = fall_confidence(make_pose(leg_deg=30))
    assert conf == pytest.approx(0.4)
    assert not is_falling


def test_funcao_pura(falling_pose):
    assert fall_confidence(falling_pose) == fall_confidence(falling_pose)


def test_parametros_configuraveis(make_pose):
    params = GeometryParams(fall_threshold=0.5)
    is_falling, conf = fall_confidence(make_pose(80, 150), params)
    assert conf == pytest.approx(0.6)
    assert is_falling
