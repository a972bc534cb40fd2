"""Marutham Care dashboard server: application factories.

This module provides:
- create_app() for the MCP server alone (tool tests, FastMCP discovery)
- create_http_app() for the browser-facing ASGI app: MCP endpoint, dashboard
  routes, signed session cookie, and a lifespan that runs the device-feed
  poller and closes outbound clients
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.routing import Mount

from marutham.core.audit.logger import AuditLogger
from marutham.core.config.settings import Settings, get_settings
from marutham.core.feeds.lifi import DeviceFeedClient
from marutham.core.identity.google import GoogleIdentity
from marutham.core.llm.client import SummaryLLMClient
from marutham.core.llm.provider import LLMProvider, create_provider
from marutham.core.mail.gmail import GmailMailer
from marutham.core.mail.relay import MailRelay
from marutham.core.server.routes import register_http_routes
from marutham.core.server.services import DashboardServices
from marutham.core.storage import RecordStore, create_store
from marutham.core.storage.database import DashboardDatabase
from marutham.dashboard.summary.flow import SummaryFlow
from marutham.dashboard.summary.template import load_summary_template
from marutham.dashboard.tools.audit_tools import register_audit_tools
from marutham.dashboard.tools.profile_tools import register_profile_tools
from marutham.dashboard.tools.summary_tools import register_summary_tools
from marutham.dashboard.tools.vitals_tools import register_vitals_tools
from marutham.dashboard.views.vitals_view import VitalsPanel

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
SESSION_COOKIE = "marutham_session"


def _llm_credentials(settings: Settings) -> tuple[str, str]:
    """API key and model for the configured provider."""
    if settings.llm_provider == "gemini":
        return settings.gemini_api_key, settings.gemini_model
    if settings.llm_provider == "anthropic":
        return settings.anthropic_api_key, settings.anthropic_model
    if settings.llm_provider == "openai":
        return settings.openai_api_key, settings.openai_model
    return "", ""


def _build_llm_client(
    settings: Settings,
    provider_override: LLMProvider | None,
) -> SummaryLLMClient | None:
    if provider_override is not None:
        return SummaryLLMClient(provider_override, provider_name=settings.llm_provider)
    if settings.llm_provider == "mock":
        return SummaryLLMClient(create_provider("mock"), provider_name="mock")

    api_key, model = _llm_credentials(settings)
    if not api_key:
        logger.warning(
            "No API key configured for provider '%s'; summaries will fail until %s_API_KEY is set",
            settings.llm_provider,
            settings.llm_provider.upper(),
        )
        return None
    provider = create_provider(settings.llm_provider, api_key=api_key, model=model)
    return SummaryLLMClient(provider, provider_name=settings.llm_provider)


def _assemble(
    settings: Settings,
    *,
    database_override: DashboardDatabase | None = None,
    store_override: RecordStore | None = None,
    llm_provider_override: LLMProvider | None = None,
    mailer_override: GmailMailer | None = None,
    feed_client_override: DeviceFeedClient | None = None,
    identity_override: GoogleIdentity | None = None,
) -> tuple[FastMCP, DashboardServices]:
    """Build the server and its services.

    1. Creates the FastMCP server instance
    2. Opens the local database (audit trail, and records in sqlite mode)
    3. Builds the record store selected by STORE_BACKEND
    4. Creates the summary LLM client, mailer, device feed and identity clients
    5. Registers MCP tools and the dashboard's HTTP routes
    """
    # --- Server instance ---
    server = FastMCP(
        "Marutham Care",
        instructions=(
            "Marutham Care patient dashboard. Stores intake profiles and visit "
            "history, reads device vitals, and generates an AI health summary "
            "that can be emailed to the patient."
        ),
    )

    # --- Local database ---
    if database_override is not None:
        database = database_override
    else:
        database = DashboardDatabase(settings.db_path)
        database.initialize()
        logger.info(
            "Local database ready: %s (schema v%d)",
            settings.db_path,
            database.get_schema_version(),
        )
    audit_logger = AuditLogger(database)

    # --- Record store ---
    store = store_override or create_store(settings, database)
    logger.info("Record store backend: %s", store.backend_name)

    # --- Outbound clients; one settings object, no module-level clients ---
    timeout = settings.http_timeout_seconds
    mailer = mailer_override or GmailMailer(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        refresh_token=settings.google_refresh_token,
        sender_email=settings.gmail_sender_email,
        sender_name=settings.gmail_sender_name,
        timeout=timeout,
        transport_retries=settings.gmail_transport_retries,
    )
    feed_client = feed_client_override or DeviceFeedClient(settings.lifi_feed_url, timeout=timeout)
    identity = identity_override or GoogleIdentity(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        timeout=timeout,
    )
    if not settings.google_oauth_configured:
        logger.warning("Google OAuth is not configured; sign-in and email will fail")

    # --- Summary flow ---
    mail_relay = MailRelay(mailer, audit_logger)
    summary_flow = SummaryFlow(
        store,
        _build_llm_client(settings, llm_provider_override),
        template=load_summary_template(),
        mail_relay=mail_relay,
        audit_logger=audit_logger,
        missing_key_message=f"{settings.llm_provider.upper()}_API_KEY is not configured",
    )

    # --- Device feed poller; only the local store caches what it pulls ---
    cache = store if hasattr(store, "save_vitals") else None
    vitals_panel = VitalsPanel(feed_client, cache=cache, interval_ms=settings.lifi_poll_interval_ms)

    services = DashboardServices(
        settings=settings,
        database=database,
        store=store,
        audit_logger=audit_logger,
        summary_flow=summary_flow,
        mail_relay=mail_relay,
        mailer=mailer,
        feed_client=feed_client,
        identity=identity,
        vitals_panel=vitals_panel,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Marutham Care",
            "version": VERSION,
            "store_backend": store.backend_name,
            "llm_provider": settings.llm_provider,
            "llm_configured": summary_flow.llm_client is not None,
            "email_configured": bool(
                settings.google_oauth_configured
                and settings.google_refresh_token
                and settings.gmail_sender_email
            ),
            "audit_events": audit_logger.count_events(),
        }

    register_profile_tools(server, services)
    register_vitals_tools(server, services)
    register_summary_tools(server, summary_flow)
    register_audit_tools(server, audit_logger)
    logger.info("Dashboard tools registered")

    # --- Register HTTP routes ---
    register_http_routes(server, services)

    return server, services


def create_app(*, settings: Settings | None = None, **overrides) -> FastMCP:
    """Create and configure the MCP server.

    Accepts the same ``*_override`` keywords as ``create_http_app``. No
    background work is started; the device-feed poller runs only under
    ``create_http_app``'s lifespan.
    """
    server, _ = _assemble(settings or get_settings(), **overrides)
    return server


def _session_secret(settings: Settings) -> str:
    if settings.session_secret:
        return settings.session_secret
    logger.warning("SESSION_SECRET is not set; sign-ins will not survive a restart")
    return secrets.token_urlsafe(32)


def create_http_app(*, settings: Settings | None = None, **overrides) -> Starlette:
    """Create the ASGI app served by ``main.run``.

    The MCP app is mounted at the root so its ``/mcp`` endpoint and the
    dashboard routes share one session cookie and one lifespan.
    """
    settings = settings or get_settings()
    server, services = _assemble(settings, **overrides)
    mcp_app = server.http_app()

    @asynccontextmanager
    async def lifespan(app: Starlette):
        async with mcp_app.router.lifespan_context(mcp_app):
            await services.start()
            try:
                yield
            finally:
                await services.stop()

    app = Starlette(
        routes=[Mount("/", app=mcp_app)],
        middleware=[
            Middleware(
                SessionMiddleware,
                secret_key=_session_secret(settings),
                session_cookie=SESSION_COOKIE,
                max_age=settings.session_max_age_seconds,
                same_site="lax",
                https_only=settings.session_https_only,
            ),
        ],
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.mcp = server
    return app


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
