"""Configuração do detector de quedas (config.yaml)."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass(frozen=True)
class GeometryParams:
    """Pesos e normalizações da heurística de pose.

    trunk_weight * min(1, tronco / trunk_norm_deg)
      + leg_weight * min(1, |perna - leg_norm_angle_deg| / leg_norm_range_deg)
    > fall_threshold  =>  queda
    """
    trunk_weight: float = 0.6
    trunk_norm_deg: float = 75.0
    leg_weight: float = 0.4
    leg_norm_angle_deg: float = 150.0  # perna estendida em pé
    leg_norm_range_deg: float = 70.0
    fall_threshold: float = 0.7


@dataclass(frozen=True)
class FusionParams:
    classifier_threshold: float = 0.7
    fall_label: str = "fall"
    pose_frame_threshold: int = 5
    reset_streak_on_missing_pose: bool = False


@dataclass(frozen=True)
class PoseParams:
    model: str = "yolov8n-pose.pt"
    conf: float = 0.25
    device: str = "cpu"


@dataclass(frozen=True)
class DetectorParams:
    model: str = "runs/models/fall_yolo.pt"
    conf: float = 0.25
    device: str = "cpu"


@dataclass(frozen=True)
class VideoParams:
    source: Union[str, int] = 0
    target_fps: float = 15.0
    loop: bool = True
    reconnect_delay_s: float = 3.0


@dataclass(frozen=True)
class AlertParams:
    webhook_url: Optional[str] = None
    timeout_s: float = 4.0


@dataclass(frozen=True)
class FallConfig:
    geometry: GeometryParams = field(default_factory=GeometryParams)
    fusion: FusionParams = field(default_factory=FusionParams)
    pose: PoseParams = field(default_factory=PoseParams)
    detector: DetectorParams = field(default_factory=DetectorParams)
    video: VideoParams = field(default_factory=VideoParams)
    alerts: AlertParams = field(default_factory=AlertParams)


_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


def _coerce(name: str, kind: str, value):
    """Converte o valor do YAML para o tipo declarado (anotação em string)."""
    try:
        if kind == "float":
            if isinstance(value, bool):
                raise TypeError
            return float(value)
        if kind == "int":
            if isinstance(value, bool):
                raise TypeError
            f = float(value)
            if not f.is_integer():
                raise TypeError
            return int(f)
        if kind == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise TypeError
        if kind == "str":
            if isinstance(value, (dict, list)):
                raise TypeError
            return str(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name}: valor inválido para {kind}: {value!r}") from None
    return value


def _section(cls, raw: Optional[Dict[str, Any]]):
    # chaves desconhecidas são ignoradas
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError(f"seção inválida para {cls.__name__}: {raw!r}")
    types = {f.name: f.type for f in fields(cls)}
    return cls(**{k: _coerce(f"{cls.__name__}.{k}", types[k], v)
                  for k, v in raw.items() if k in types})


def _validate(cfg: FallConfig) -> FallConfig:
    if cfg.fusion.pose_frame_threshold < 1:
        raise ValueError("fusion.pose_frame_threshold deve ser >= 1")
    if not 0.0 <= cfg.fusion.classifier_threshold <= 1.0:
        raise ValueError("fusion.classifier_threshold fora de [0, 1]")
    if cfg.video.target_fps <= 0:
        raise ValueError("video.target_fps deve ser > 0")
    if cfg.geometry.trunk_norm_deg <= 0 or cfg.geometry.leg_norm_range_deg <= 0:
        raise ValueError("normalizações de ângulo devem ser > 0")
    src = cfg.video.source
    if isinstance(src, str) and src.isdigit():
        cfg = replace(cfg, video=replace(cfg.video, source=int(src)))
    return cfg


def from_dict(data: Optional[Dict[str, Any]]) -> FallConfig:
    data = data or {}
    return _validate(FallConfig(
        geometry=_section(GeometryParams, data.get("geometry")),
        fusion=_section(FusionParams, data.get("fusion")),
        pose=_section(PoseParams, data.get("pose")),
        detector=_section(DetectorParams, data.get("detector")),
        video=_section(VideoParams, data.get("video")),
        alerts=_section(AlertParams, data.get("alerts")),
    ))


def load_config(config_path: Union[str, Path] = "config.yaml") -> FallConfig:
    """Lê o YAML; arquivo ausente => valores padrão."""
    path = Path(config_path)
    if not path.exists():
        return FallConfig()
    with open(path, "r", encoding="utf-8") as f:
        return from_dict(yaml.safe_load(f))
