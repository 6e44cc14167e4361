"""Reasoning service client contract and the Ollama implementation."""

import hashlib
from typing import Optional, Protocol, runtime_checkable

import structlog
from langchain_ollama import ChatOllama
from pydantic import BaseModel, Field

from decision_trace.config.settings import Settings, get_settings
from decision_trace.errors import ReasoningServiceError
from decision_trace.llm.retry import status_code_of
from decision_trace.sources import DocumentRef, extract_pdf_text

logger = structlog.get_logger(__name__)


class ReasoningRequest(BaseModel):
    stage_id: str
    prompt: str
    raw_document_ref: Optional[DocumentRef] = Field(
        None, description="Only ever set for the first stage"
    )


class ReasoningResponse(BaseModel):
    response_text: str
    tokens_used: int = 0


@runtime_checkable
class ReasoningServiceClient(Protocol):
    """Opaque generative service returning JSON text."""

    async def call(self, request: ReasoningRequest) -> ReasoningResponse: ...

    async def upload_raw_document(
        self, content: bytes, mime_type: str, filename: str
    ) -> DocumentRef: ...


def create_chat_model(settings: Settings | None = None) -> ChatOllama:
    """Create configured Ollama chat model.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.

    Returns:
        Configured ChatOllama instance.
    """
    settings = settings or get_settings()

    return ChatOllama(
        model=settings.llm_model_name,
        base_url=settings.llm_ollama_base_url,
        temperature=settings.llm_temperature,
        num_ctx=settings.llm_num_ctx,
        num_predict=settings.llm_num_predict,
        client_kwargs={"timeout": settings.llm_request_timeout},
    )


class OllamaReasoningClient:
    """Reasoning service backed by a local Ollama model.

    Ollama has no file store, so uploaded documents are held in process and
    their text is attached to the request that references them.
    """

    def __init__(self, settings: Settings | None = None, chat_model=None):
        self.settings = settings or get_settings()
        self._chat_model = chat_model or create_chat_model(self.settings)
        self._documents: dict[str, str] = {}

    async def upload_raw_document(
        self, content: bytes, mime_type: str, filename: str
    ) -> DocumentRef:
        if mime_type == "application/pdf" or filename.lower().endswith(".pdf"):
            text = extract_pdf_text(content)
        else:
            text = content.decode("utf-8", errors="replace")

        digest = hashlib.sha256(content).hexdigest()[:16]
        ref = DocumentRef(uri=f"local://{digest}/{filename}", mime_type=mime_type, filename=filename)
        self._documents[ref.uri] = text
        logger.info("document_uploaded", uri=ref.uri, chars=len(text))
        return ref

    def _compose(self, request: ReasoningRequest) -> str:
        ref = request.raw_document_ref
        if ref is None:
            return request.prompt
        text = self._documents.get(ref.uri)
        if text is None:
            raise ReasoningServiceError(f"Unknown document reference: {ref.uri}", status_code=404)
        return f"{request.prompt}\n\nATTACHED FILE ({ref.filename}):\n---\n{text}\n---"

    async def call(self, request: ReasoningRequest) -> ReasoningResponse:
        prompt = self._compose(request)
        logger.debug(
            "reasoning_call",
            stage_id=request.stage_id,
            model=self.settings.llm_model_name,
            prompt_length=len(prompt),
        )

        try:
            message = await self._chat_model.ainvoke(prompt)
        except Exception as e:
            raise ReasoningServiceError(
                f"Ollama call failed for {request.stage_id}: {e}",
                status_code=status_code_of(e),
            ) from e

        content = message.content if isinstance(message.content, str) else str(message.content)
        if not content.strip():
            # No status code, so the executor treats it as transient
            raise ReasoningServiceError(f"Empty response from model for {request.stage_id}")

        usage = getattr(message, "usage_metadata", None) or {}
        return ReasoningResponse(response_text=content, tokens_used=usage.get("total_tokens", 0))
