import numpy as np
import pytest

from falldetect.inference.detector import FallClassifier
from falldetect.inference.pose import PoseEstimator


class T:
    """Imita o pedaço da API de tensor usado pelos adaptadores."""

    def __init__(self, arr):
        self.arr = np.asarray(arr)

    def cpu(self): return self
    def numpy(self): return self.arr
    def numel(self): return int(self.arr.size)
    def __len__(self): return len(self.arr)
    def argmax(self): return T(self.arr.argmax())
    def item(self): return self.arr.item()
    def astype(self, dtype): return T(self.arr.astype(dtype))


class Boxes:
    def __init__(self, xyxyn, conf, cls):
        self.xyxyn = T(xyxyn)
        self.conf = T(conf)
        self.cls = T(cls)


class Keypoints:
    def __init__(self, data):
        self.data = T(data)

    def __getitem__(self, i):
        return Keypoints(self.data.arr[i])


class Result:
    def __init__(self, boxes=None, keypoints=None, names=None):
        self.boxes = boxes
        self.keypoints = keypoints
        self.names = names or {0: "fall", 1: "person"}


class FakeDetModel:
    def __init__(self, results):
        self.results = results

    def predict(self, frame, **kw):
        return self.results


class FakePoseModel:
    def __init__(self, results):
        self.results = results

    def __call__(self, frame, **kw):
        return self.results


def test_detector_converte_caixas():
    r = Result(Boxes([[0.1, 0.2, 0.4, 0.8], [0.5, 0.5, 0.6, 0.9]], [0.91, 0.4], [0, 1]))
    dets = FallClassifier(model=FakeDetModel([r]))(np.zeros((10, 10, 3)))
    assert [d.label for d in dets] == ["fall", "person"]
    assert dets[0].confidence == pytest.approx(0.91)
    assert dets[0].bbox == pytest.approx((0.1, 0.2, 0.3, 0.6))


def test_detector_sem_resultado_ou_sem_modelo():
    assert FallClassifier(model=FakeDetModel([]))(None) == []
    assert FallClassifier(model=FakeDetModel([Result(None)]))(None) == []
    det = FallClassifier()
    assert not det.loaded
    assert det(None) == []


def _person(offset):
    k = np.zeros((17, 3), dtype=np.float32)
    k[5] = [100 + offset, 50, 0.9]   # ombro esquerdo
    k[6] = [140 + offset, 50, 0.9]   # ombro direito
    k[11] = [105 + offset, 120, 0.8]
    k[12] = [135 + offset, 120, 0.8]
    return k


def test_pose_escolhe_pessoa_mais_confiante():
    kpts = np.stack([_person(0), _person(20)])
    r = Result(Boxes([[0, 0, 1, 1], [0, 0, 1, 1]], [0.3, 0.9], [0, 0]), Keypoints(kpts))
    est = PoseEstimator(model=FakePoseModel([r]))
    frame = np.zeros((200, 400, 3), dtype=np.uint8)
    pose = est(frame)
    assert pose.left_shoulder.position == pytest.approx((120 / 400, 50 / 200))
    assert pose.neck.position == pytest.approx((140 / 400, 50 / 200))
    assert pose.left_hip.confidence == pytest.approx(0.8)


def test_pose_sem_pessoa():
    empty = Result(Boxes(np.zeros((0, 4)), np.zeros((0,)), np.zeros((0,))), Keypoints(np.zeros((0, 17, 3))))
    assert PoseEstimator(model=FakePoseModel([empty]))(np.zeros((10, 10, 3))) is None
    assert PoseEstimator(model=FakePoseModel([]))(np.zeros((10, 10, 3))) is None
    assert PoseEstimator()(np.zeros((10, 10, 3))) is None
