# src/k3sboot/observers/console.py
from enum import Enum
from .events import BaseEvent


def _fmt(v):
    return v.value if isinstance(v, Enum) else v


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        print(f"[{d['ts']}] {k} run={d['run_id']} cluster={d['cluster']} data={{"
              + ", ".join(f"{x}={_fmt(y)}" for x,y in d.items() if x not in ('ts','run_id','cluster')) + "}")
