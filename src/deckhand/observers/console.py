# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/observers/console.py
import typer

from .events import BaseEvent

_SKIP = ("ts", "run_id", "env", "context")


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _SKIP)
        fg = typer.colors.RED if k.endswith("Failed") else None
        typer.secho(f"[{d['ts']}] {k} {data}", fg=fg)
