"""Тести рендерера: формат рядків, порядок секцій, clear-послідовність."""
from __future__ import annotations

import io
import unittest

from rich.console import Console

from iscsi_top.collectors import ConnectionRecord, ThroughputSample
from iscsi_top.display import (
    build_connection_lines, build_footer, build_throughput_lines, render,
)


def _console() -> Console:
    return Console(file=io.StringIO(), force_terminal=True, color_system=None,
                   width=200, highlight=False)


def _conn(worker: int, conn: int) -> ConnectionRecord:
    return ConnectionRecord(worker, conn, "disk1", "iqn.init", "10.0.0.1")


class TestLines(unittest.TestCase):
    def test_connection_line_format(self) -> None:
        lines = build_connection_lines([_conn(1, 3)])
        self.assertEqual(lines[0].plain,
                         "lcore  1 conn   3 T:disk1    I:iqn.init (10.0.0.1)")
        self.assertEqual(lines[-1].plain, "")

    def test_one_line_per_connection(self) -> None:
        lines = build_connection_lines([_conn(0, i) for i in range(5)])
        self.assertEqual(len(lines), 6)  # + порожній роздільник

    def test_throughput_table(self) -> None:
        sample = ThroughputSample(rates=[(3, 500), (12, 7)], total=507)
        plain = [t.plain for t in build_throughput_lines(sample)]
        self.assertEqual(plain, [
            "lcore   tasks",
            "=============",
            "    3     500",
            "   12       7",
            "Total     507",
        ])

    def test_idle_table_has_only_total(self) -> None:
        plain = [t.plain for t in build_throughput_lines(ThroughputSample())]
        self.assertEqual(plain[-1], "Total       0")
        self.assertEqual(len(plain), 3)

    def test_footer(self) -> None:
        footer = build_footer(2, 5, {"cpu_percent": 33.3, "cpu_count": 4},
                              "'x' not recognized")
        self.assertIn("[d] delay", footer.plain)
        self.assertIn("[q] quit", footer.plain)
        self.assertIn("instance=2 delay=5s", footer.plain)
        self.assertIn("cpu=33.3% x4", footer.plain)
        self.assertTrue(footer.plain.endswith("'x' not recognized"))

    def test_footer_without_cpu(self) -> None:
        self.assertNotIn("cpu=", build_footer(0, 1, {}).plain)


class TestRender(unittest.TestCase):
    def test_frame_order_and_clear(self) -> None:
        console = _console()
        render(console, [_conn(0, 1), _conn(1, 2)],
               ThroughputSample(rates=[(1, 10)], total=10),
               build_footer(0, 1, {}))
        out = console.file.getvalue()
        self.assertTrue(out.startswith("\x1b[H\x1b[2J"))
        lines = out[len("\x1b[H\x1b[2J"):].splitlines()
        self.assertTrue(lines[0].startswith("lcore  0 conn   1"))
        self.assertTrue(lines[1].startswith("lcore  1 conn   2"))
        self.assertEqual(lines[2].strip(), "")
        self.assertEqual(lines[3], "lcore   tasks")
        self.assertEqual(lines[5], "    1      10")
        self.assertEqual(lines[6], "Total      10")
        self.assertIn("[q] quit", lines[7])

    def test_clear_precedes_every_frame(self) -> None:
        console = _console()
        for _ in range(3):
            render(console, [], ThroughputSample(), build_footer(0, 1, {}))
        self.assertEqual(console.file.getvalue().count("\x1b[2J"), 3)


if __name__ == "__main__":
    unittest.main()
