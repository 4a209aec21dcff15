from __future__ import annotations

import json
from pathlib import Path

from eth_utils import to_checksum_address
from loguru import logger


class StakeLedger:
    """Beneficial owner of each position the zap holds in a gauge."""

    def __init__(self, records: dict[int, str] | None = None):
        self._records: dict[int, str] = {
            int(k): to_checksum_address(v) for k, v in (records or {}).items()
        }

    def record(self, position_id: int, owner: str) -> None:
        self._records[int(position_id)] = to_checksum_address(owner)

    def owner_of(self, position_id: int) -> str | None:
        return self._records.get(int(position_id))

    def remove(self, position_id: int) -> None:
        self._records.pop(int(position_id), None)

    def items(self) -> list[tuple[int, str]]:
        return sorted(self._records.items())

    def snapshot(self) -> dict[int, str]:
        return dict(self._records)

    def restore(self, snapshot: dict[int, str]) -> None:
        self._records = dict(snapshot)

    def __contains__(self, position_id: object) -> bool:
        return isinstance(position_id, int) and position_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class JsonFileStakeLedger(StakeLedger):
    """StakeLedger persisted to a JSON file after every mutation."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        records: dict[int, str] = {}
        if self.path.exists():
            raw = json.loads(self.path.read_text())
            records = {int(k): v for k, v in raw.items()}
            logger.debug(f"loaded {len(records)} stake record(s) from {self.path}")
        super().__init__(records)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {str(k): v for k, v in sorted(self._records.items())}
        self.path.write_text(json.dumps(data, indent=2) + "\n")

    def record(self, position_id: int, owner: str) -> None:
        super().record(position_id, owner)
        self._flush()

    def remove(self, position_id: int) -> None:
        super().remove(position_id)
        self._flush()

    def restore(self, snapshot: dict[int, str]) -> None:
        super().restore(snapshot)
        self._flush()
