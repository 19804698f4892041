"""Display — рендерер кадру iscsi-top.

Порядок кадру:
  1. Connections — lcore / conn / target / initiator / addr
  2. Throughput  — lcore / tasks per sec (тільки не-idle)
  3. Total
  4. Footer      — hotkeys + instance / delay / host CPU + status

Фіксована ширина, рядок на запис. Без стану.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from rich.console import Console
from rich.control import Control
from rich.text import Text

from iscsi_top.collectors import ConnectionRecord, ThroughputSample

_RULE = "============="


# ---------------------------------------------------------------------------
# 1. Connections
# ---------------------------------------------------------------------------
def build_connection_lines(conns: Sequence[ConnectionRecord]) -> List[Text]:
    lines = []
    for c in conns:
        line = Text()
        line.append("lcore %2d " % c.worker_id, style="bold cyan")
        line.append("conn %3d " % c.conn_id, style="bold white")
        line.append("T:%-8s " % c.target_name, style="green")
        line.append("I:%s " % c.initiator_name)
        line.append("(%s)" % c.initiator_addr, style="dim")
        lines.append(line)
    lines.append(Text(""))
    return lines


# ---------------------------------------------------------------------------
# 2. Throughput table + total
# ---------------------------------------------------------------------------
def build_throughput_lines(sample: ThroughputSample) -> List[Text]:
    lines = [
        Text("lcore   tasks", style="bold"),
        Text(_RULE, style="dim"),
    ]
    for worker_id, rate in sample.rates:
        lines.append(Text("%5d %7d" % (worker_id, rate)))
    lines.append(Text("Total %7d" % sample.total, style="bold yellow"))
    return lines


# ---------------------------------------------------------------------------
# 3. Footer
# ---------------------------------------------------------------------------
def build_footer(instance_id: int, delay: int, host: Dict[str, Any],
                 status: str = "") -> Text:
    line = Text()
    line.append("[d]", style="bold cyan")
    line.append(" delay  ")
    line.append("[q]", style="bold cyan")
    line.append(" quit    ")
    line.append(f"instance={instance_id} delay={delay}s", style="dim")
    cpu = host.get("cpu_percent")
    if cpu is not None:
        line.append(f" cpu={cpu:.1f}%", style="dim")
        cores = host.get("cpu_count")
        if cores:
            line.append(f" x{cores}", style="dim")
    if status:
        line.append("    ")
        line.append(status, style="bold yellow")
    return line


def render(console: Console, conns: Sequence[ConnectionRecord],
           sample: ThroughputSample, footer: Text) -> None:
    """Очистити екран (home + clear) і вивести кадр."""
    console.control(Control.home(), Control.clear())
    for line in build_connection_lines(conns):
        console.print(line, soft_wrap=True)
    for line in build_throughput_lines(sample):
        console.print(line, soft_wrap=True)
    console.print(footer, soft_wrap=True)
