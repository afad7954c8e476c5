from ultralytics import YOLO

from falldetect.pose import Pose
from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.pose_estimator")


class PoseEstimator:
    def __init__(self, model_path=None, conf=0.5, device="cpu", model=None):
        self.conf = conf
        self.device = device
        self.model = model
        if self.model is None and model_path:
            try:
                self.model = YOLO(model_path)
                self.model.to(device)
            except Exception as e:
                LOG.error("falha ao carregar modelo de pose %s: %s", model_path, e)
                self.model = None

    def keypoints(self, frame):
        """(17,3) x,y,conf em pixels da pessoa mais confiante, ou None."""
        if self.model is None:
            return None
        results = self.model(frame, conf=self.conf, device=self.device, verbose=False)

        if not results:
            return None

        r = results[0]

        # nenhuma pessoa encontrada
        if r.boxes is None or r.boxes.conf is None or r.boxes.conf.numel() == 0:
            return None

        # só a pessoa principal (sem rastreamento multi-pessoa)
        idx = int(r.boxes.conf.argmax().item())

        if r.keypoints is None or r.keypoints.data.numel() == 0:
            return None

        return r.keypoints[idx].data.cpu().numpy()

    def __call__(self, frame):
        kps = self.keypoints(frame)
        if kps is None:
            return None
        h, w = frame.shape[:2]
        return Pose.from_coco(kps, width=w, height=h)
