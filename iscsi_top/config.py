"""Конфігурація iscsi-top: DashboardConfig + читач JSON-конфігу.

Шлях до конфігу: ENV ``ISCSI_TOP_CONFIG`` або ``iscsi_top.json`` у cwd.
Файл опційний — без нього працюємо на дефолтах layout-у.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from iscsi_top.regions import DEFAULT_SHM_DIR, RegionLayout

log = logging.getLogger(__name__)

DELAY_MIN = 1
DELAY_MAX = 10
DEFAULT_DELAY = 1

_CONFIG_ENV = "ISCSI_TOP_CONFIG"
_DEFAULT_CONFIG = "iscsi_top.json"

_DELAY_RE = re.compile(r"\s*([+-]?\d+)")

_LAYOUT_KEYS = ("max_connections", "max_workers", "max_tpoints", "task_done_tpoint")


@dataclass
class DashboardConfig:
    """Стан, яким володіє контролер. instance_id не змінюється після старту."""

    instance_id: int = 0
    delay: int = DEFAULT_DELAY
    quit: bool = False
    layout: RegionLayout = field(default_factory=RegionLayout)

    def apply_delay_text(self, text: str) -> bool:
        """Нова затримка з введеного рядка.

        Береться ціле на початку рядка ("5abc" → 5, "2.5" → 2), як scanf("%d").
        Немає цілого → без змін (False). Поза [1, 10] → 1, не найближча межа.
        """
        m = _DELAY_RE.match(text)
        if m is None:
            return False
        value = int(m.group(1))
        if value < DELAY_MIN or value > DELAY_MAX:
            value = DEFAULT_DELAY
        self.delay = value
        return True


def pick_config_path() -> str:
    env_path = (os.environ.get(_CONFIG_ENV) or "").strip()
    return env_path or _DEFAULT_CONFIG


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """JSON-конфіг як dict. Немає файлу → {}; зламаний → warning + {}."""
    target = path or pick_config_path()
    try:
        with open(target, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        log.warning("CONFIG_SKIP path=%s err=%s", target, exc)
        return {}
    if not isinstance(data, dict):
        log.warning("CONFIG_SKIP path=%s err=not a JSON object", target)
        return {}
    return data


def build_layout(cfg: Dict[str, Any]) -> RegionLayout:
    """RegionLayout з конфігу; некоректні значення ігноруються з warning."""
    kwargs: Dict[str, Any] = {"shm_dir": str(cfg.get("shm_dir") or DEFAULT_SHM_DIR)}
    for key in _LAYOUT_KEYS:
        if key not in cfg:
            continue
        try:
            value = int(cfg[key])
        except (TypeError, ValueError):
            log.warning("CONFIG_BAD_VALUE key=%s value=%r", key, cfg[key])
            continue
        if value < 0 or (value == 0 and key != "task_done_tpoint"):
            log.warning("CONFIG_BAD_VALUE key=%s value=%r", key, value)
            continue
        kwargs[key] = value

    layout = RegionLayout(**kwargs)
    if layout.task_done_tpoint >= layout.max_tpoints:
        log.warning("CONFIG_BAD_VALUE task_done_tpoint=%d >= max_tpoints=%d, using 0",
                    layout.task_done_tpoint, layout.max_tpoints)
        layout = RegionLayout(**dict(kwargs, task_done_tpoint=0))
    return layout
