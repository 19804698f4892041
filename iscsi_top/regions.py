"""Regions — read-only attach до shared-memory регіонів iSCSI target.

Продюсер (iSCSI target) експортує два POSIX shm-об'єкти на інстанс:
  - ``spdk_iscsi_conns.<id>``  — таблиця з'єднань фіксованої ємності
  - ``iscsi_trace.<id>``       — per-lcore лічильники tracepoint-ів

Ми тільки читаємо. Синхронізації з продюсером немає: запис може бути
прочитаний "розірваним" (частково оновленим). Це прийнятно — кожен цикл
робить новий best-effort знімок, блокувань не вводимо, бо продюсер їх
теж не використовує.
"""
from __future__ import annotations

import contextlib
import ctypes
import logging
import mmap
import os
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Type

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
CONNS = "conns"
TRACE = "trace"

_REGION_NAMES: Dict[str, str] = {
    CONNS: "spdk_iscsi_conns.{0}",
    TRACE: "iscsi_trace.{0}",
}

DEFAULT_SHM_DIR = "/dev/shm"

_TARGET_NAME_LEN = 64
_INITIATOR_NAME_LEN = 256
_INITIATOR_ADDR_LEN = 64


class RegionError(Exception):
    """Регіон не існує або не мапиться (фатально на старті)."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Cannot open shared memory: {name} ({reason})")
        self.name = name
        self.reason = reason


# ---------------------------------------------------------------------------
# Binary layouts (native byte order, як у продюсера)
# ---------------------------------------------------------------------------
class ConnectionSlot(ctypes.Structure):
    _fields_ = [
        ("lcore", ctypes.c_int32),
        ("id", ctypes.c_int32),
        ("is_valid", ctypes.c_uint8),
        ("_pad", ctypes.c_uint8 * 7),
        ("target_short_name", ctypes.c_char * _TARGET_NAME_LEN),
        ("initiator_name", ctypes.c_char * _INITIATOR_NAME_LEN),
        ("initiator_addr", ctypes.c_char * _INITIATOR_ADDR_LEN),
    ]


_history_types: Dict[int, Type[ctypes.Structure]] = {}


def history_slot_type(max_tpoints: int) -> Type[ctypes.Structure]:
    """ctypes-тип per-lcore запису: lcore + tpoint_count[max_tpoints]."""
    cls = _history_types.get(max_tpoints)
    if cls is None:
        cls = type(
            f"HistorySlot{max_tpoints}",
            (ctypes.Structure,),
            {"_fields_": [
                ("lcore", ctypes.c_uint64),
                ("tpoint_count", ctypes.c_uint64 * max_tpoints),
            ]},
        )
        _history_types[max_tpoints] = cls
    return cls


@dataclass(frozen=True)
class RegionLayout:
    """Ємності таблиць — build-time властивість продюсера."""

    shm_dir: str = DEFAULT_SHM_DIR
    max_connections: int = 1024
    max_workers: int = 128
    max_tpoints: int = 64
    task_done_tpoint: int = 1

    def slot_type(self, kind: str) -> Type[ctypes.Structure]:
        if kind == CONNS:
            return ConnectionSlot
        if kind == TRACE:
            return history_slot_type(self.max_tpoints)
        raise ValueError(f"unknown region kind: {kind!r}")

    def capacity(self, kind: str) -> int:
        return self.max_connections if kind == CONNS else self.max_workers

    def region_size(self, kind: str) -> int:
        return ctypes.sizeof(self.slot_type(kind)) * self.capacity(kind)


def region_name(kind: str, instance_id: int) -> str:
    """Ім'я shm-об'єкта за конвенцією продюсера."""
    try:
        return _REGION_NAMES[kind].format(instance_id)
    except KeyError:
        raise ValueError(f"unknown region kind: {kind!r}") from None


# ---------------------------------------------------------------------------
# Read-only view
# ---------------------------------------------------------------------------
class RegionView:
    """Read-only мапінг одного регіону. Слоти читаються копією (snapshot)."""

    def __init__(self, kind: str, name: str, fd: int, buf: mmap.mmap,
                 layout: RegionLayout) -> None:
        self.kind = kind
        self.name = name
        self.layout = layout
        self._fd: Optional[int] = fd
        self._buf: Optional[mmap.mmap] = buf
        self._slot_type = layout.slot_type(kind)
        self._slot_size = ctypes.sizeof(self._slot_type)

    @property
    def closed(self) -> bool:
        return self._buf is None

    def __len__(self) -> int:
        return self.layout.capacity(self.kind)

    def slot(self, index: int) -> ctypes.Structure:
        """Копія слота ``index``. Може бути розірваною — не перевіряємо."""
        if self._buf is None:
            raise ValueError(f"region {self.name} is detached")
        if not 0 <= index < len(self):
            raise IndexError(index)
        return self._slot_type.from_buffer_copy(self._buf, index * self._slot_size)

    def slots(self) -> Iterator[ctypes.Structure]:
        for i in range(len(self)):
            yield self.slot(i)

    def _release(self) -> None:
        buf, fd = self._buf, self._fd
        self._buf = None
        self._fd = None
        try:
            if buf is not None:
                buf.close()
        finally:
            if fd is not None:
                os.close(fd)


def attach(kind: str, instance_id: int, layout: RegionLayout) -> RegionView:
    """Відкрити shm-об'єкт O_RDONLY і замапити PROT_READ/MAP_SHARED.

    Raises:
        RegionError: регіону немає, або він коротший за layout, або mmap впав.
    """
    name = region_name(kind, instance_id)
    path = os.path.join(layout.shm_dir, name)
    size = layout.region_size(kind)

    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError as exc:
        raise RegionError(name, exc.strerror or str(exc)) from exc

    try:
        actual = os.fstat(fd).st_size
        if actual < size:
            raise RegionError(name, f"size {actual} < expected {size}")
        buf = mmap.mmap(fd, size, flags=mmap.MAP_SHARED, prot=mmap.PROT_READ)
    except RegionError:
        os.close(fd)
        raise
    except (OSError, ValueError) as exc:
        os.close(fd)
        raise RegionError(name, f"mmap failed: {exc}") from exc

    log.info("attached %s (%d bytes, %d slots)", name, size, layout.capacity(kind))
    return RegionView(kind, name, fd, buf, layout)


def detach(view: RegionView) -> None:
    """Звільнити мапінг. Повторний detach — no-op."""
    if view.closed:
        return
    view._release()
    log.debug("detached %s", view.name)


@contextlib.contextmanager
def attached(kind: str, instance_id: int, layout: RegionLayout) -> Iterator[RegionView]:
    """attach/detach парою: detach гарантований на будь-якому виході."""
    view = attach(kind, instance_id, layout)
    try:
        yield view
    finally:
        detach(view)
