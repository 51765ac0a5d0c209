from __future__ import annotations

from fastapi import Request

from app.config import Settings
from app.conversation.router import ConversationRouter
from app.database.repository import Repository
from app.llm.client import OllamaClient
from app.webhook.rate_limiter import RateLimiter
from app.whatsapp.client import WhatsAppClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_whatsapp_client(request: Request) -> WhatsAppClient:
    return request.app.state.whatsapp_client


def get_ollama_client(request: Request) -> OllamaClient:
    return request.app.state.ollama_client


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_conversation_router(request: Request) -> ConversationRouter:
    return request.app.state.conversation_router
