"""Stage result persistence.

Stage results are stored per case and stage number so a later run can
resume from validated earlier stages. Only completed results count as
validated; failed attempts are stored for inspection but never reused.

Layout of the JSON file store::

    {base_dir}/{case_id}/stage_{n}.json

Case ids with characters outside ``[A-Za-z0-9_.-]`` are sanitized and
suffixed with a short hash of the original id.
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import aiofiles
import structlog

from decision_trace.models.enums import StageStatus
from decision_trace.models.stages import StageResult

logger = structlog.get_logger(__name__)

_SAFE_CASE_ID = re.compile(r"[^A-Za-z0-9_.-]")


@runtime_checkable
class PersistenceClient(Protocol):
    async def save_stage_result(self, case_id: str, result: StageResult) -> None: ...

    async def load_validated_stage(
        self, case_id: str, stage_number: int
    ) -> Optional[dict[str, Any]]: ...


def _is_reusable(result: StageResult) -> bool:
    return result.status in (StageStatus.COMPLETED, StageStatus.SKIPPED) and result.data is not None


class InMemoryStageStore:
    """Process-local store, mostly for tests and one-off runs."""

    def __init__(self):
        self._results: dict[tuple[str, int], StageResult] = {}

    async def save_stage_result(self, case_id: str, result: StageResult) -> None:
        key = (case_id, result.stage_number)
        previous = self._results.get(key)
        # A failed retry must not shadow an earlier validated result
        if previous is not None and _is_reusable(previous) and not _is_reusable(result):
            return
        self._results[key] = result

    async def load_validated_stage(
        self, case_id: str, stage_number: int
    ) -> Optional[dict[str, Any]]:
        result = self._results.get((case_id, stage_number))
        if result is None or not _is_reusable(result):
            return None
        return dict(result.data)

    def get(self, case_id: str, stage_number: int) -> Optional[StageResult]:
        return self._results.get((case_id, stage_number))


class JsonFileStageStore:
    """One directory per case, one JSON file per stage, written with aiofiles."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def case_dir(self, case_id: str) -> Path:
        """Directory for a case. Sanitized ids get a hash suffix so they stay distinct."""
        name = _SAFE_CASE_ID.sub("_", case_id)
        if name != case_id or not name.strip("."):
            digest = hashlib.sha256(case_id.encode("utf-8")).hexdigest()[:12]
            name = f"{name}-{digest}"
        return self.base_dir / name

    def stage_path(self, case_id: str, stage_number: int) -> Path:
        return self.case_dir(case_id) / f"stage_{stage_number}.json"

    async def _read(self, path: Path) -> Optional[StageResult]:
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        return StageResult.model_validate(json.loads(content))

    async def save_stage_result(self, case_id: str, result: StageResult) -> None:
        path = self.stage_path(case_id, result.stage_number)
        if not _is_reusable(result):
            previous = await self._read(path)
            if previous is not None and _is_reusable(previous):
                failed_path = path.with_name(f"stage_{result.stage_number}_failed.json")
                await self._write(failed_path, result)
                return
        await self._write(path, result)

    async def _write(self, path: Path, result: StageResult) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(result.model_dump(mode="json"), indent=2))
        logger.debug("stage_result_saved", path=str(path), status=result.status.value)

    async def load_validated_stage(
        self, case_id: str, stage_number: int
    ) -> Optional[dict[str, Any]]:
        result = await self._read(self.stage_path(case_id, stage_number))
        if result is None or not _is_reusable(result):
            return None
        return dict(result.data)
