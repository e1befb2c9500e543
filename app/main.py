from __future__ import annotations

from typing import Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from langchain_core.language_models import BaseChatModel
import logging
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatbot.core.models import Message
from chatbot.llm import build_llm, generate_reply, summarize_conversation, upstream_error
from config.settings import get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("gemini_chat")

app = FastAPI(title="Gemini Chat Proxy", version="1.0.0")

# CORS: allow a local browser frontend during development
settings = get_settings()
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class ChatRequest(BaseModel):
    message: str = Field(..., description="The user's latest message")


class SummarizeRequest(BaseModel):
    messages: List[Message] = Field(..., description="Full conversation to title")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request body: {problems}"})


def get_llm() -> BaseChatModel:
    try:
        return build_llm()
    except RuntimeError as exc:
        logger.error("Cannot build Gemini client: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))


def _as_http_error(exc: Exception) -> HTTPException:
    upstream = upstream_error(exc)
    if upstream is None:
        return HTTPException(status_code=500, detail="Internal server error")
    status, message = upstream
    return HTTPException(status_code=status, detail=message)


@app.post("/api/chat")
def chat(req: ChatRequest, llm: BaseChatModel = Depends(get_llm)) -> Dict[str, str]:
    logger.info("Incoming chat: message_len=%s", len(req.message))
    try:
        reply = generate_reply(llm, req.message)
    except Exception as e:
        logger.exception("Gemini API error: %s", e)
        raise _as_http_error(e)

    logger.info("Model responded: %s chars", len(reply))
    return {"reply": reply}


@app.post("/api/summarize")
def summarize(req: SummarizeRequest, llm: BaseChatModel = Depends(get_llm)) -> Dict[str, str]:
    logger.info("Incoming summarize: messages=%s", len(req.messages))
    try:
        summary = summarize_conversation(llm, req.messages)
    except Exception as e:
        logger.exception("Summarize API error: %s", e)
        raise _as_http_error(e)

    logger.info("Summary title: %r", summary)
    return {"summary": summary}


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.server_host, port=settings.server_port)
