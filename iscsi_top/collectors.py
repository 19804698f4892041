"""Collectors — знімки з'єднань і throughput по lcore для iscsi-top.

Read-only. Кожен collector повертає чисті дані для рендерингу.

Відоме обмеження: дельти лічильників рахуються в беззнаковій 64-bit
арифметиці без перевірок. Якщо продюсер скине лічильник нижче baseline
(або 64-bit лічильник переповниться), дельта буде величезною. Це не
коригується.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import psutil

from iscsi_top.regions import RegionView

_U64_MASK = (1 << 64) - 1


def _cstr(raw: bytes) -> str:
    """c_char масив → str. Розірвані байти не кидають виключення."""
    return raw.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# 1. Connections
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ConnectionRecord:
    worker_id: int
    conn_id: int
    target_name: str
    initiator_name: str
    initiator_addr: str


def read_connections(view: RegionView) -> List[ConnectionRecord]:
    """Валідні з'єднання, відсортовані стабільно за (worker_id, conn_id).

    Порожня або повністю невалідна таблиця → [].
    """
    records = []
    for slot in view.slots():
        if not slot.is_valid:
            continue
        records.append(ConnectionRecord(
            worker_id=slot.lcore,
            conn_id=slot.id,
            target_name=_cstr(slot.target_short_name),
            initiator_name=_cstr(slot.initiator_name),
            initiator_addr=_cstr(slot.initiator_addr),
        ))
    # sorted() стабільний: рівні ключі зберігають порядок слотів
    return sorted(records, key=lambda r: (r.worker_id, r.conn_id))


# ---------------------------------------------------------------------------
# 2. Throughput per worker
# ---------------------------------------------------------------------------
@dataclass
class ThroughputSample:
    rates: List[Tuple[int, int]] = field(default_factory=list)  # (worker_id, per_sec)
    total: int = 0


class ThroughputAggregator:
    """Дельта-агрегатор лічильника "task done" по всіх слотах воркерів.

    Baseline ключується індексом слота в таблиці продюсера. Перший
    ``sample()`` лише засіює baseline з живих лічильників і повертає
    порожній результат — тому перший кадр завжди all-idle.
    """

    def __init__(self, view: RegionView) -> None:
        self._view = view
        self._tpoint = view.layout.task_done_tpoint
        self._baseline: Dict[int, int] = {}
        self._seeded = False

    @property
    def seeded(self) -> bool:
        return self._seeded

    def baseline(self) -> Dict[int, int]:
        return dict(self._baseline)

    def seed(self) -> None:
        for index, slot in enumerate(self._view.slots()):
            self._baseline[index] = slot.tpoint_count[self._tpoint]
        self._seeded = True

    def sample(self, interval_s: int) -> ThroughputSample:
        """Дельти з минулого циклу → rate = delta // interval_s.

        Idle-воркери (delta == 0) пропускаються. Baseline оновлюється
        для кожного слота незалежно від дельти.
        """
        if not self._seeded:
            self.seed()
            return ThroughputSample()

        out = ThroughputSample()
        for index, slot in enumerate(self._view.slots()):
            current = slot.tpoint_count[self._tpoint]
            delta = (current - self._baseline.get(index, 0)) & _U64_MASK
            self._baseline[index] = current
            if delta == 0:
                continue
            rate = delta // interval_s
            out.rates.append((slot.lcore, rate))
            out.total += rate
        return out


# ---------------------------------------------------------------------------
# 3. Host (footer)
# ---------------------------------------------------------------------------
def collect_host() -> Dict[str, Any]:
    """CPU хоста. interval=None — неблокуючий виклик (дельта з минулого)."""
    return {
        "cpu_percent": psutil.cpu_percent(interval=None),
        "cpu_count": psutil.cpu_count(),
    }
