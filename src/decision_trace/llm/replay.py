"""Reasoning client that replays recorded responses from disk.

Used for offline runs and reproducible audits. Responses are looked up as
``{case_id}_{stage_id}.json`` first, then ``{stage_id}.json``. A file may
hold either a recorded envelope (``{"response_text": ..., "tokens_used":
...}``) or the stage payload itself.
"""

import json
from pathlib import Path
from typing import Optional

import aiofiles
import structlog

from decision_trace.errors import ReasoningServiceError
from decision_trace.llm.client import ReasoningRequest, ReasoningResponse
from decision_trace.sources import DocumentRef

logger = structlog.get_logger(__name__)


class ReplayReasoningClient:
    """Serve stage responses from a directory of recordings."""

    def __init__(self, recordings_dir: str | Path, case_id: Optional[str] = None):
        self.recordings_dir = Path(recordings_dir)
        self.case_id = case_id

    def _candidates(self, stage_id: str) -> list[Path]:
        names = [f"{stage_id}.json"]
        if self.case_id:
            names.insert(0, f"{self.case_id}_{stage_id}.json")
        return [self.recordings_dir / name for name in names]

    async def upload_raw_document(
        self, content: bytes, mime_type: str, filename: str
    ) -> DocumentRef:
        return DocumentRef(uri=f"replay://{filename}", mime_type=mime_type, filename=filename)

    async def call(self, request: ReasoningRequest) -> ReasoningResponse:
        for path in self._candidates(request.stage_id):
            if not path.exists():
                continue
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
            logger.debug("replaying_response", stage_id=request.stage_id, path=str(path))
            return _to_response(content)

        raise ReasoningServiceError(
            f"No recorded response for {request.stage_id} in {self.recordings_dir}",
            status_code=404,
        )


def _to_response(content: str) -> ReasoningResponse:
    try:
        recorded = json.loads(content)
    except json.JSONDecodeError:
        # Recorded malformed output is replayed as-is
        return ReasoningResponse(response_text=content)

    if isinstance(recorded, dict) and isinstance(recorded.get("response_text"), str):
        return ReasoningResponse(
            response_text=recorded["response_text"],
            tokens_used=int(recorded.get("tokens_used") or 0),
        )
    return ReasoningResponse(response_text=content)
