# utils/context.py
"""Application context: everything a download or reader needs, built once."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import ValidationError

from config import Config
from database import create_supabase_client
from schemas.content_schemas import BookInfo
from schemas.results import Err
from utils.cache import ContentCache
from utils.crossrefs import CrossRefIndex
from utils.gateway import ContentGateway
from utils.ledger import DownloadLedger
from utils.settings import SettingsStore
from utils.transport import DirectTransport, OrchestratorTransport

logger = logging.getLogger(__name__)

CORE_TAGS = ('books', 'themes', 'aliases')


@dataclass
class AppContext:
    config: Any
    cache: ContentCache
    gateway: ContentGateway
    settings: SettingsStore
    ledger: DownloadLedger
    crossrefs: CrossRefIndex
    books: Dict[str, BookInfo] = field(default_factory=dict)
    themes: List[dict] = field(default_factory=list)
    aliases: List[dict] = field(default_factory=list)


def build_transport(config, client):
    if config.CONTENT_TRANSPORT == 'direct':
        return DirectTransport(client, page_size=config.PAGE_SIZE)
    if config.CONTENT_TRANSPORT == 'orchestrator':
        return OrchestratorTransport(client, function_name=config.ORCHESTRATOR_FUNCTION)
    raise ValueError(f"Unknown CONTENT_TRANSPORT: {config.CONTENT_TRANSPORT!r}")


def build_context(config=Config, client=None, transport=None) -> AppContext:
    if transport is None:
        if client is None:
            client = create_supabase_client(
                config.SUPABASE_URL,
                config.SUPABASE_ANON_KEY,
                timeout_seconds=config.FETCH_TIMEOUT_SECONDS,
            )
        transport = build_transport(config, client)

    cache = ContentCache.open(config.CACHE_DB_PATH)
    settings = SettingsStore(config.SETTINGS_PATH)
    return AppContext(
        config=config,
        cache=cache,
        gateway=ContentGateway(transport, page_size=config.PAGE_SIZE, timeout=config.FETCH_TIMEOUT_SECONDS),
        settings=settings,
        ledger=DownloadLedger(settings),
        crossrefs=CrossRefIndex(cache),
    )


async def load_core_data(context, refresh=False) -> bool:
    """Load books, themes and aliases, cache first unless refresh is asked for.

    Fetched datasets are written back to the cache. Returns True when a
    books list is available afterwards.
    """
    cached = {tag: await asyncio.to_thread(context.cache.get_core_dataset, tag) for tag in CORE_TAGS}
    datasets = cached

    if refresh or not cached['books']:
        result = await context.gateway.fetch_core_data()
        if isinstance(result, Err):
            logger.error(f"Error fetching core data: {result}")
            if not cached['books']:
                return False
            logger.info("Falling back to cached core data")
        else:
            data = result.value or {}
            datasets = {tag: data.get(tag) or [] for tag in CORE_TAGS}
            for tag, records in datasets.items():
                await asyncio.to_thread(context.cache.save_core_dataset, tag, records)

    books = {}
    for row in datasets['books'] or []:
        try:
            book = BookInfo.model_validate(row)
        except ValidationError as e:
            logger.warning(f"Skipping malformed book row {row!r}: {e}")
            continue
        books[book.id] = book

    context.books = books
    context.themes = datasets['themes'] or []
    context.aliases = datasets['aliases'] or []
    logger.info(f"Loaded {len(books)} books")
    return bool(books)
