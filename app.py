"""HTTP API for the tutor.

Authentication belongs to the session provider in front of this app; it
forwards the authenticated user id in the ``X-User-Id`` header.
"""

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config.settings import Settings
from llm.errors import CompletionAPIError, ConfigurationError, InvalidRequestError
from memory.sqlite_store import UNSET
from orchestrator import TutorOrchestrator
from schemas.chat import ErrorResponse
from schemas.records import ConversationCreate, MemoryCreate, MemoryUpdate, MessageCreate

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_orchestrator() -> TutorOrchestrator:
    """Process-wide orchestrator built from environment settings."""
    return TutorOrchestrator(settings=Settings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().close()


app = FastAPI(title="MentorAI Tutor API", lifespan=lifespan)

# Documented error bodies; every failure is returned as {"error": message}
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 404, 500)
}
CHAT_ERROR_RESPONSES = {**ERROR_RESPONSES, 502: {"model": ErrorResponse}}


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "Invalid payload")


# -- chat --------------------------------------------------------------------

@app.post("/api/chat", responses=CHAT_ERROR_RESPONSES)
async def chat(
    request: Request,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    try:
        payload = await request.json()
    except ValueError:
        return error_response(400, "Invalid payload")

    try:
        logger.info(f"Chat request from {user_id}")
        response = await run_in_threadpool(orchestrator.handle_chat, user_id, payload)
        return response.model_dump(by_alias=True)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return error_response(500, str(e))
    except InvalidRequestError as e:
        return error_response(400, str(e))
    except CompletionAPIError as e:
        logger.error(f"Completion API failed with status {e.status_code}")
        return error_response(502, e.body)
    except Exception as e:
        logger.exception(e)
        return error_response(500, str(e))


# -- conversations -----------------------------------------------------------

@app.get("/api/conversations", responses=ERROR_RESPONSES)
def list_conversations(
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    conversations = orchestrator.store.list_conversations(user_id)
    return {"conversations": [c.model_dump(exclude={"messages"}) for c in conversations]}


@app.post("/api/conversations", responses=ERROR_RESPONSES)
def create_conversation(
    body: ConversationCreate,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    conversation = orchestrator.store.create_conversation(user_id, body.title)
    return {"conversation": conversation.model_dump(exclude={"messages"})}


@app.delete("/api/conversations/{conversation_id}", responses=ERROR_RESPONSES)
def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    if not orchestrator.store.delete_conversation(conversation_id, user_id):
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}


# -- messages ----------------------------------------------------------------

@app.get("/api/messages", responses=ERROR_RESPONSES)
def list_messages(
    conversation_id: Optional[str] = Query(default=None, alias="conversationId"),
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    if not conversation_id:
        raise HTTPException(status_code=400, detail="Missing conversationId")
    if not orchestrator.store.get_conversation(conversation_id, user_id):
        raise HTTPException(status_code=404, detail="Not found")
    messages = orchestrator.store.list_messages(conversation_id)
    return {"messages": [m.model_dump() for m in messages]}


@app.post("/api/messages", responses=ERROR_RESPONSES)
def create_message(
    body: MessageCreate,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    if not orchestrator.store.get_conversation(body.conversation_id, user_id):
        raise HTTPException(status_code=404, detail="Not found")
    message = orchestrator.store.add_message(
        body.conversation_id,
        role=body.role,
        content=body.content,
        speech_content=body.speech_content
    )
    return {"message": message.model_dump()}


# -- memories ----------------------------------------------------------------

@app.get("/api/memories", responses=ERROR_RESPONSES)
def list_memories(
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    memories = orchestrator.store.list_memories(user_id)
    return {"memories": [m.model_dump() for m in memories]}


@app.post("/api/memories", responses=ERROR_RESPONSES)
def create_memory(
    body: MemoryCreate,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")
    memory = orchestrator.store.create_memory(
        user_id=user_id,
        content=content,
        title=(body.title or "").strip() or None
    )
    return {"memory": memory.model_dump()}


@app.put("/api/memories/{memory_id}", responses=ERROR_RESPONSES)
def update_memory(
    memory_id: str,
    body: MemoryUpdate,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    title = body.title.strip() if isinstance(body.title, str) else body.title
    memory = orchestrator.store.update_memory(
        memory_id,
        user_id,
        content=body.content.strip() if body.content is not None else None,
        title=title if "title" in body.model_fields_set else UNSET
    )
    if not memory:
        raise HTTPException(status_code=404, detail="Not found")
    return {"memory": memory.model_dump()}


@app.delete("/api/memories/{memory_id}", responses=ERROR_RESPONSES)
def delete_memory(
    memory_id: str,
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    if not orchestrator.store.delete_memory(memory_id, user_id):
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}


# -- account -----------------------------------------------------------------

@app.delete("/api/user", responses=ERROR_RESPONSES)
def delete_user(
    user_id: str = Depends(get_user_id),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    # Conversations, messages and memories cascade
    orchestrator.store.delete_user(user_id)
    return {"ok": True}
