"""Фікстури: регіони продюсера як реальні файли в тимчасовому shm_dir."""
from __future__ import annotations

import ctypes
import os
from typing import Dict, Iterable, Tuple

from iscsi_top.regions import (
    CONNS, TRACE, ConnectionSlot, RegionLayout, history_slot_type, region_name,
)

TEST_LAYOUT_KW = dict(max_connections=128, max_workers=8, max_tpoints=4,
                      task_done_tpoint=1)


def make_layout(shm_dir: str) -> RegionLayout:
    return RegionLayout(shm_dir=shm_dir, **TEST_LAYOUT_KW)


def conn_slot(lcore: int, conn_id: int, target: str = "disk1",
              initiator: str = "iqn.2016-06.io.spdk:init",
              addr: str = "10.0.0.1", valid: bool = True) -> ConnectionSlot:
    slot = ConnectionSlot()
    slot.lcore = lcore
    slot.id = conn_id
    slot.is_valid = 1 if valid else 0
    slot.target_short_name = target.encode()
    slot.initiator_name = initiator.encode()
    slot.initiator_addr = addr.encode()
    return slot


def write_conns(layout: RegionLayout, instance_id: int,
                slots: Dict[int, ConnectionSlot]) -> str:
    """Таблиця на max_connections слотів; не вказані слоти — нулі (invalid)."""
    path = os.path.join(layout.shm_dir, region_name(CONNS, instance_id))
    empty = bytes(ctypes.sizeof(ConnectionSlot))
    with open(path, "wb") as f:
        for i in range(layout.max_connections):
            slot = slots.get(i)
            f.write(bytes(slot) if slot is not None else empty)
    return path


def write_trace(layout: RegionLayout, instance_id: int,
                counters: Dict[int, int]) -> str:
    """Таблиця лічильників: слот i має lcore=i і task_done=counters.get(i, 0)."""
    path = os.path.join(layout.shm_dir, region_name(TRACE, instance_id))
    cls = history_slot_type(layout.max_tpoints)
    with open(path, "wb") as f:
        for i in range(layout.max_workers):
            slot = cls()
            slot.lcore = i
            slot.tpoint_count[layout.task_done_tpoint] = counters.get(i, 0)
            f.write(bytes(slot))
    return path


def set_counter(layout: RegionLayout, instance_id: int,
                worker: int, value: int) -> None:
    """Оновити лічильник in-place — як продюсер через спільний мапінг."""
    path = os.path.join(layout.shm_dir, region_name(TRACE, instance_id))
    cls = history_slot_type(layout.max_tpoints)
    offset = (worker * ctypes.sizeof(cls) + ctypes.sizeof(ctypes.c_uint64)
              + layout.task_done_tpoint * ctypes.sizeof(ctypes.c_uint64))
    with open(path, "r+b") as f:
        f.seek(offset)
        f.write(ctypes.c_uint64(value))


def set_counters(layout: RegionLayout, instance_id: int,
                 pairs: Iterable[Tuple[int, int]]) -> None:
    for worker, value in pairs:
        set_counter(layout, instance_id, worker, value)
