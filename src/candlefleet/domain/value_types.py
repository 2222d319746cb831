from __future__ import annotations
from typing import NewType, Literal

Epoch   = NewType("Epoch", int)    # unix seconds, UTC
JobId   = NewType("JobId", str)    # id assigned by the remote host
Mode    = Literal["backtest", "live"]
Stage   = Literal["checking", "importing", "ready", "done"]
