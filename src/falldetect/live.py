"""Detecção de quedas ao vivo: câmera ou vídeo em loop, com preview opcional."""

from __future__ import annotations

import argparse
import logging
import threading
import time
from dataclasses import replace
from typing import Optional

import cv2

from falldetect.annotate import draw_overlay
from falldetect.config import FallConfig, load_config
from falldetect.fusion import FusionEngine
from falldetect.inference.detector import FallClassifier
from falldetect.inference.pose import PoseEstimator
from falldetect.inference.video import VideoSource
from falldetect.session import DetectionSession
from falldetect.signals.alerts import AlertStateMachine, HelpWebhook
from falldetect.utils.log import get_logger

LOG = get_logger("falldetect.live")


def build_session(cfg: FallConfig, source=None, detector=None, pose_estimator=None) -> DetectionSession:
    """Monta alerta + fusão + sessão a partir da configuração."""
    alerts = AlertStateMachine()
    webhook = HelpWebhook(cfg.alerts.webhook_url, timeout=cfg.alerts.timeout_s)
    if webhook.enabled:
        alerts.subscribe_help(webhook)
    engine = FusionEngine(alerts, geometry=cfg.geometry, params=cfg.fusion)

    if source is None:
        source = VideoSource(cfg.video.source, target_fps=cfg.video.target_fps,
                             loop=cfg.video.loop, reconnect_delay_s=cfg.video.reconnect_delay_s)
    if detector is None:
        detector = FallClassifier(cfg.detector.model, conf=cfg.detector.conf, device=cfg.detector.device)
    if pose_estimator is None:
        pose_estimator = PoseEstimator(cfg.pose.model, conf=cfg.pose.conf, device=cfg.pose.device)
    return DetectionSession(source, detector, pose_estimator, engine, target_fps=cfg.video.target_fps)


def _serve(session: DetectionSession, host: str, port: int) -> threading.Thread:
    import uvicorn
    from falldetect.api import create_app

    app = create_app(session)
    t = threading.Thread(target=uvicorn.run, args=(app,), kwargs={"host": host, "port": port, "log_level": "info"},
                         name="api", daemon=True)
    t.start()
    LOG.info("API em http://%s:%d", host, port)
    return t


def run(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    if args.source is not None:
        src = int(args.source) if str(args.source).isdigit() else args.source
        cfg = replace(cfg, video=replace(cfg.video, source=src))

    session = build_session(cfg)
    alerts = session.alerts
    alerts.subscribe(lambda s: LOG.info({"event": "alert_changed", **s.as_dict()}))

    if args.serve:
        _serve(session, args.host, args.port)

    show_pose = True
    session.toggle_detection(True)
    try:
        if args.no_window:
            while True:
                time.sleep(0.5)
        while True:
            frame = session.latest_frame
            if frame is None:
                time.sleep(0.01)
                continue
            last = session.engine.last_frame
            status = (f"{'detectando' if session.is_detecting else 'pausado'} "
                      f"pose={last.estimate.confidence:.2f} seq={session.engine.streak}/{session.engine.threshold}")
            view = draw_overlay(frame, last.pose, last.detections, alerts.state, show_pose=show_pose, status=status)
            cv2.imshow("falldetect", view)
            k = cv2.waitKey(1) & 0xFF
            if k == 27:
                break
            elif k == ord("c"):
                session.cancel_alert()
            elif k == ord("h"):
                session.request_help()
            elif k == ord("p"):
                show_pose = not show_pose
            elif k == ord(" "):
                session.toggle_detection()
    except KeyboardInterrupt:
        pass
    finally:
        session.close()
        if not args.no_window:
            cv2.destroyAllWindows()


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fall detection ao vivo (classificador + pose)")
    parser.add_argument("--config", default="config.yaml", help="Arquivo YAML de configuração")
    parser.add_argument("--source", default=None, help='Índice da câmera ou caminho do vídeo (sobrescreve o YAML)')
    parser.add_argument("--no-window", action="store_true", help="Sem janela de preview")
    parser.add_argument("--serve", action="store_true", help="Sobe a API de controle (FastAPI)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("-v", "--verbose", action="store_true", help="Logs verbosos.")
    return parser


def main(argv: Optional[list] = None) -> None:
    args = build_argparser().parse_args(argv)
    if args.verbose:
        for name in ("falldetect.fusion", "falldetect.session", "falldetect.alerts"):
            get_logger(name, level=logging.DEBUG)
    run(args)


if __name__ == "__main__":
    main()
