import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from app.classification.classifier import IntentClassifier
from app.config import Settings
from app.conversation.image_cache import ImageCache
from app.conversation.locks import UserLocks
from app.conversation.router import ConversationRouter
from app.database.db import init_db
from app.database.repository import Repository
from app.embeddings.client import EmbeddingClient
from app.health.router import router as health_router
from app.llm.client import OllamaClient
from app.logging_config import configure_logging
from app.memory.fact_store import FactStore
from app.memory.retrieval import Retriever
from app.profiles.personas import PersonaService
from app.reminders.scheduler import ReminderScheduler
from app.training.service import TrainingService
from app.webhook.rate_limiter import RateLimiter
from app.webhook.router import router as webhook_router, wait_for_in_flight
from app.whatsapp.client import WhatsAppClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    configure_logging(
        level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file
    )

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(600.0, connect=10.0))

    # Database
    Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
    db_conn = await init_db(settings.database_path)
    repository = Repository(db_conn)

    # Providers
    whatsapp_client = WhatsAppClient(
        http_client=http_client,
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
    )
    ollama_client = OllamaClient(
        http_client=http_client,
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
        embed_model=settings.embedding_model,
    )
    timeout = settings.provider_timeout_seconds
    embeddings = EmbeddingClient(ollama_client, settings.embedding_model, timeout=timeout)
    classifier = IntentClassifier(ollama_client, timeout=timeout)

    # Memory, personas and training
    fact_store = FactStore(repository, embeddings, dedup_threshold=settings.dedup_threshold)
    retriever = Retriever(
        repository,
        embeddings,
        threshold=settings.relevance_threshold,
        top_k=settings.retrieval_top_k,
    )
    personas = PersonaService(repository)
    locks = UserLocks()
    training = TrainingService(
        repository,
        classifier,
        personas,
        locks,
        training_dir=settings.training_dir,
        sweep_interval_hours=settings.training_sweep_interval_hours,
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.repository = repository
    app.state.whatsapp_client = whatsapp_client
    app.state.ollama_client = ollama_client
    app.state.rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window,
    )
    app.state.conversation_router = ConversationRouter(
        settings=settings,
        repository=repository,
        ollama_client=ollama_client,
        classifier=classifier,
        fact_store=fact_store,
        retriever=retriever,
        personas=personas,
        training=training,
        locks=locks,
        image_cache=ImageCache(),
    )

    # Background jobs
    scheduler = AsyncIOScheduler()
    ReminderScheduler(
        repository,
        whatsapp_client.send_message,
        interval_seconds=settings.reminder_interval_seconds,
    ).register(scheduler)
    training.register(scheduler)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("Scheduler started with reminder and training jobs")

    yield

    scheduler.shutdown(wait=False)
    await wait_for_in_flight(timeout=30.0)
    await db_conn.close()
    await http_client.aclose()


app = FastAPI(title="Jek Assistant", lifespan=lifespan)
app.include_router(health_router)
app.include_router(webhook_router)
