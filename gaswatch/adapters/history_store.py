# /gaswatch/adapters/history_store.py
# Narrow read/write interface to the gas history, plus a JSON-lines file backend.
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

import aiofiles
from pydantic import ValidationError

from gaswatch.core.config import settings
from gaswatch.core.history import shape_window
from gaswatch.core.logger import get_logger
from gaswatch.core.models import HistoryRow

log = get_logger(__name__)


class HistoryStore(ABC):
    """
    Append-only store of collection snapshots.

    ``query_window`` returns ascending points for one chain (low/average/high) or for
    ``"all"`` (chain -> swap cost), bounded to the clamped window and downsampled.
    """

    @abstractmethod
    async def append(self, rows: Sequence[HistoryRow]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def rows(self) -> List[HistoryRow]:
        raise NotImplementedError

    async def query_window(self, chain: str, hours: float, now: int | None = None) -> list:
        return shape_window(await self.rows(), chain, hours, now=now)


class JsonlHistoryStore(HistoryStore):
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.HISTORY_FILE)

    async def append(self, rows: Sequence[HistoryRow]) -> None:
        if not rows:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = "".join(row.model_dump_json() + "\n" for row in rows)
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(payload)
        log.debug("HISTORY_ROWS_APPENDED", path=str(self.path), rows=len(rows))

    async def rows(self) -> List[HistoryRow]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                lines = await f.readlines()
        except FileNotFoundError:
            return []

        rows = []
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(HistoryRow.model_validate(json.loads(line)))
            except (ValueError, ValidationError) as e:
                log.warning("HISTORY_LINE_SKIPPED", path=str(self.path), line=lineno, error=str(e))
        return rows
