"""iscsi-top — live top-подібний монітор iSCSI target (read-only).

Цикл: чекаємо клавішу до ``delay`` секунд (select з таймаутом, без
busy-poll) → обробляємо максимум одну команду → знімок з'єднань +
throughput → кадр.

  [d]  нова затримка 1..10 с (поза межами → 1, сміття → без змін)
  [q]  вихід

Запуск: iscsi-top [-i INSTANCE]  або  python -m iscsi_top [-i INSTANCE]
"""
from __future__ import annotations

import argparse
import contextlib
import logging
import os
import select
import sys
import termios
import time
from typing import Callable, Iterator, List, NoReturn, Optional

from rich.console import Console

from iscsi_top.collectors import ThroughputAggregator, collect_host, read_connections
from iscsi_top.config import DashboardConfig, build_layout, load_config
from iscsi_top.display import build_footer, render
from iscsi_top.regions import CONNS, TRACE, RegionError, RegionView, attached

log = logging.getLogger(__name__)

_STATUS_TTL = 5.0  # секунд показувати повідомлення
_DELAY_PROMPT = "Enter num seconds to delay (1-10): "


class InputError(Exception):
    """EOF або помилка читання stdin — трактується як quit."""


# ---------------------------------------------------------------------------
# Terminal mode (non-canonical), гарантоване відновлення
# ---------------------------------------------------------------------------
@contextlib.contextmanager
def raw_terminal(fd: int) -> Iterator[None]:
    """Вимкнути ICANON на час роботи; відновити попередній режим на виході.

    Не TTY (pipe, тести) → нічого не змінюємо.
    """
    if not os.isatty(fd):
        yield
        return
    old = termios.tcgetattr(fd)
    new = termios.tcgetattr(fd)
    new[3] &= ~termios.ICANON
    new[6][termios.VMIN] = 1
    new[6][termios.VTIME] = 0
    termios.tcsetattr(fd, termios.TCSANOW, new)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, old)


# ---------------------------------------------------------------------------
# Interactive controller
# ---------------------------------------------------------------------------
class InteractiveController:
    """Running → Quitting. Quitting термінальний."""

    def __init__(self, config: DashboardConfig, console: Console,
                 fd: int = 0) -> None:
        self.config = config
        self.console = console
        self.fd = fd
        self.status = ""
        self.status_expire = 0.0

    def set_status(self, msg: str) -> None:
        self.status = msg
        self.status_expire = time.time() + _STATUS_TTL

    @property
    def active_status(self) -> str:
        return self.status if time.time() < self.status_expire else ""

    # -- input ------------------------------------------------------------
    def _read_char(self) -> str:
        try:
            data = os.read(self.fd, 1)
        except OSError as exc:
            raise InputError(str(exc)) from exc
        if not data:
            raise InputError("EOF on stdin")
        return data.decode("latin-1")

    def _read_line(self) -> str:
        chars: List[str] = []
        while True:
            ch = self._read_char()
            if ch == "\n":
                return "".join(chars)
            chars.append(ch)

    def wait_for_key(self) -> Optional[str]:
        """Чекати stdin до ``delay`` секунд. None → таймаут (звичайний refresh)."""
        ready, _, _ = select.select([self.fd], [], [], self.config.delay)
        if not ready:
            return None
        return self._read_char()

    def handle_key(self, ch: str) -> None:
        if ch == "q":
            self.config.quit = True
        elif ch == "d":
            # \b стирає ехо "d" (ECHO лишається ввімкненим); rich Text вирізає \b
            self.console.file.write("\b")
            self.console.print(_DELAY_PROMPT, end="", soft_wrap=True)
            text = self._read_line()
            if self.config.apply_delay_text(text):
                log.info("delay set to %ds", self.config.delay)
                self.set_status(f"delay set to {self.config.delay}s")
            else:
                self.set_status(f"bad delay {text.strip()!r}, kept {self.config.delay}s")
        else:
            log.warning("%r not recognized", ch)
            self.set_status(f"{ch!r} not recognized")

    def step(self) -> bool:
        """Один цикл очікування+команди. True → рендерити кадр."""
        try:
            ch = self.wait_for_key()
            if ch is not None:
                self.handle_key(ch)
        except InputError as exc:
            log.error("Read error on stdin: %s", exc)
            self.config.quit = True
        return not self.config.quit

    def run(self, refresh: Callable[[], None]) -> None:
        """Початковий кадр, далі цикл до quit. Термінал відновлюється завжди."""
        with raw_terminal(self.fd):
            refresh()
            while self.step():
                refresh()
        log.info("quit")


# ---------------------------------------------------------------------------
# Frame
# ---------------------------------------------------------------------------
def make_refresh(controller: InteractiveController, conns_view: RegionView,
                 aggregator: ThroughputAggregator) -> Callable[[], None]:
    cfg = controller.config

    def refresh() -> None:
        conns = read_connections(conns_view)
        sample = aggregator.sample(cfg.delay)
        footer = build_footer(cfg.instance_id, cfg.delay, collect_host(),
                              controller.active_status)
        render(controller.console, conns, sample, footer)

    return refresh


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
class _ArgumentParser(argparse.ArgumentParser):
    """Помилка парсингу → usage у stderr, exit 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    ap = _ArgumentParser(prog="iscsi-top",
                         description="iscsi-top: live iSCSI target monitor")
    ap.add_argument("-i", dest="instance_id", type=int, default=0,
                    help="instance ID of the iSCSI target (default: 0)")
    return ap


def _setup_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint."""
    ap = build_parser()
    args = ap.parse_args(argv)

    cfg_raw = load_config()
    _setup_logging(cfg_raw.get("log_level", "WARNING"))
    config = DashboardConfig(instance_id=args.instance_id,
                             layout=build_layout(cfg_raw))

    with contextlib.ExitStack() as stack:
        try:
            trace_view = stack.enter_context(
                attached(TRACE, config.instance_id, config.layout))
            conns_view = stack.enter_context(
                attached(CONNS, config.instance_id, config.layout))
        except RegionError as exc:
            print(exc, file=sys.stderr)
            ap.print_usage(sys.stderr)
            return 1

        controller = InteractiveController(config, Console(highlight=False))
        aggregator = ThroughputAggregator(trace_view)
        controller.run(make_refresh(controller, conns_view, aggregator))
    return 0
