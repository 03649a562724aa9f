"""Main entry point for the semantic chat backend API."""
import asyncio
import logging
from typing import Optional
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from config import (
    PORT, LOG_LEVEL, LOG_FORMAT, CORS_ORIGINS, STORE_BACKEND,
    MAX_CONVERSATION_TOKENS, CACHE_SIMILARITY_SCORE, CACHE_TTL_SECONDS,
    CACHE_PURGE_INTERVAL_SECONDS,
)
from errors import ChatServiceError, DependencyFailureError, InvalidArgumentError, NotFoundError
from logger import setup_logging
from models.api import (
    CompletionRequest, CreateSessionRequest, MessageListResponse, MessageResponse,
    RenameSessionRequest, SessionListResponse, SessionResponse, SummaryResponse,
)
from services.chat_service import ChatService
from services.chat_store import SupabaseChatStore
from services.embedding_model import EmbeddingModel
from services.llm_client import LLMClient
from services.memory_store import InMemoryChatStore
from services.semantic_cache import SemanticCache
from services.tokenizer import Tokenizer

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Semantic Chat",
    description="Chat sessions with token-bounded context and a semantic completion cache",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
chat_service: ChatService = None
purge_task: Optional[asyncio.Task] = None


def build_chat_service() -> ChatService:
    """Wire the chat service from configuration."""
    if STORE_BACKEND == "memory":
        store = InMemoryChatStore()
    elif STORE_BACKEND == "supabase":
        store = SupabaseChatStore()
    else:
        raise ValueError(f"Unknown STORE_BACKEND: {STORE_BACKEND}")
    logger.info(f"Initialized {type(store).__name__}")

    embedding_model = EmbeddingModel()
    semantic_cache = SemanticCache(
        store,
        embedding_model,
        similarity_score=CACHE_SIMILARITY_SCORE,
        ttl_seconds=CACHE_TTL_SECONDS
    )
    return ChatService(
        store=store,
        llm_client=LLMClient(),
        semantic_cache=semantic_cache,
        tokenizer=Tokenizer(),
        max_conversation_tokens=MAX_CONVERSATION_TOKENS
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global chat_service, purge_task

    setup_logging(LOG_LEVEL, LOG_FORMAT)
    logger.info("Initializing semantic chat services...")

    try:
        chat_service = build_chat_service()
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    # Start expired cache purge
    purge_task = asyncio.create_task(
        chat_service.semantic_cache.run_purge_loop(CACHE_PURGE_INTERVAL_SECONDS)
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background tasks on shutdown."""
    global purge_task

    if purge_task is not None:
        purge_task.cancel()
        try:
            await purge_task
        except asyncio.CancelledError:
            pass
        purge_task = None
    logger.info("Semantic chat services shut down")


def _http_error(e: ChatServiceError) -> HTTPException:
    """Map a service error to an HTTP error with a structured body."""
    if isinstance(e, InvalidArgumentError):
        status_code = 400
    elif isinstance(e, NotFoundError):
        status_code = 404
    elif isinstance(e, DependencyFailureError):
        status_code = 503
    else:
        status_code = 500

    logger.error(f"{e.error.code}: {e.error.message}", extra={"error_code": e.error.code})
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": e.error.code,
                "message": e.error.message,
                "details": e.error.details
            }
        }
    )


def _internal_error(e: Exception) -> HTTPException:
    logger.error(f"Unexpected error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/health")
async def health():
    """Health check."""
    return {
        "status": "healthy",
        "service": "semantic-chat",
        "version": "1.0.0"
    }


@app.get("/sessions", response_model=SessionListResponse)
async def list_sessions() -> SessionListResponse:
    try:
        sessions = await chat_service.get_sessions()
        return SessionListResponse(sessions=[SessionResponse.from_session(s) for s in sessions])
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(request: Optional[CreateSessionRequest] = None) -> SessionResponse:
    try:
        session = await chat_service.create_session(request.name if request else None)
        return SessionResponse.from_session(session)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(session_id: str) -> MessageListResponse:
    try:
        messages = await chat_service.get_session_messages(session_id)
        return MessageListResponse(messages=[MessageResponse.from_message(m) for m in messages])
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.post("/sessions/{session_id}/completion", response_model=MessageResponse)
async def get_completion(session_id: str, request: CompletionRequest) -> MessageResponse:
    """
    Submit a prompt to a session and return the completed message.

    Returns 503 with a structured error if the store or model fails; the
    prompt stays recorded as a pending message in that case.
    """
    try:
        logger.info(f"Processing prompt for session {session_id}: {request.prompt[:100]}...")
        message = await chat_service.get_completion(session_id, request.prompt)
        return MessageResponse.from_message(message)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.patch("/sessions/{session_id}", response_model=SessionResponse)
async def rename_session(session_id: str, request: RenameSessionRequest) -> SessionResponse:
    try:
        session = await chat_service.rename_session(session_id, request.name)
        return SessionResponse.from_session(session)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str) -> Response:
    try:
        await chat_service.delete_session(session_id)
        return Response(status_code=204)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.post("/sessions/{session_id}/summarize", response_model=SummaryResponse)
async def summarize_session(session_id: str) -> SummaryResponse:
    try:
        name = await chat_service.summarize_session_name(session_id)
        return SummaryResponse(session_id=session_id, name=name)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.delete("/cache", status_code=204)
async def clear_cache() -> Response:
    try:
        await chat_service.clear_cache()
        return Response(status_code=204)
    except ChatServiceError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(e)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting semantic chat API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
