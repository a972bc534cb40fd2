"""Plain HTTP routes for the browser dashboard, mounted beside the MCP endpoint.

Per-user routes act for the user signed in through ``/auth/callback``; the
identity lives in the signed session cookie and never comes from the
request body. No session answers 401. Data-access failures answer 502
with ``{"error": ...}``; malformed input answers 400.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from marutham.core.errors import ConfigurationError, DashboardError
from marutham.core.identity.google import SessionUser
from marutham.core.storage.models import BackendError, ClientMetadata, RecordValidationError
from marutham.dashboard.summary.flow import SummaryFailure
from marutham.dashboard.views.profile_view import ProfileDashboard

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from marutham.core.server.services import DashboardServices

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"
SESSION_STATE_KEY = "oauth_state"
LIFI_ERROR = "Failed to fetch LiFi data"

_SUMMARY_STATUS = {
    SummaryFailure.NO_HISTORY: 409,
    SummaryFailure.BACKEND: 502,
}


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def session_user(request: Request) -> SessionUser | None:
    """The signed-in user, or None when the session holds no usable identity."""
    data = request.session.get(SESSION_USER_KEY)
    if not isinstance(data, dict) or not data.get("user_id") or not data.get("email"):
        return None
    return SessionUser(
        user_id=str(data["user_id"]),
        email=str(data["email"]),
        name=str(data.get("name") or ""),
        picture=str(data.get("picture") or ""),
    )


def _not_signed_in() -> JSONResponse:
    return JSONResponse({"error": "Not signed in"}, status_code=401)


def _backend_failure(exc: BackendError) -> JSONResponse:
    logger.warning("Record store request failed: %s", exc)
    return JSONResponse({"error": str(exc)}, status_code=502)


def _client_metadata(request: Request, url: Any = None) -> ClientMetadata:
    return ClientMetadata.from_user_agent(
        request.headers.get("user-agent", ""),
        url=str(url or request.url),
    )


def register_http_routes(mcp: FastMCP, services: DashboardServices) -> None:
    """Attach the dashboard's HTTP endpoints to the FastMCP app."""
    store = services.store

    @mcp.custom_route("/health", methods=["GET"])
    async def health(request: Request) -> Response:
        return JSONResponse({
            "status": "ok",
            "store_backend": store.backend_name,
            "llm_provider": services.settings.llm_provider,
            "vitals_polling": services.vitals_panel.poller.running,
        })

    # ------------------------------------------------------------------
    # Device feed
    # ------------------------------------------------------------------

    @mcp.custom_route("/api/lifi", methods=["GET"])
    async def lifi_proxy(request: Request) -> Response:
        try:
            payload = await services.feed_client.fetch_raw()
        except DashboardError as exc:
            logger.error("LiFi proxy failed: %s", exc)
            return JSONResponse({"error": LIFI_ERROR}, status_code=500)
        return JSONResponse(payload)

    @mcp.custom_route("/api/device-vitals", methods=["GET"])
    async def device_vitals(request: Request) -> Response:
        refresh = request.query_params.get("refresh", "").lower() in {"1", "true", "yes"}
        try:
            if refresh:
                readings = await services.refresh_vitals()
            else:
                readings = await store.list_vitals()
        except BackendError as exc:
            return _backend_failure(exc)
        except DashboardError as exc:
            logger.error("Device feed refresh failed: %s", exc)
            return JSONResponse({"error": LIFI_ERROR}, status_code=502)
        return JSONResponse([r.to_dict() for r in readings])

    @mcp.custom_route("/api/vitals-panel", methods=["GET"])
    async def vitals_panel(request: Request) -> Response:
        return JSONResponse(services.vitals_panel.render())

    @mcp.custom_route("/api/vitals-panel/interval", methods=["POST"])
    async def vitals_interval(request: Request) -> Response:
        body = await _json_body(request)
        value = body.get("interval_ms") if isinstance(body, dict) else None
        try:
            services.vitals_panel.set_refresh_interval(value)
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        return JSONResponse(services.vitals_panel.render())

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    @mcp.custom_route("/api/send-email", methods=["POST"])
    async def send_email(request: Request) -> Response:
        if session_user(request) is None:
            return _not_signed_in()
        body, status = await services.mail_relay.relay(await _json_body(request))
        return JSONResponse(body, status_code=status)

    # ------------------------------------------------------------------
    # Profile page
    # ------------------------------------------------------------------

    @mcp.custom_route("/api/dashboard", methods=["GET"])
    async def dashboard(request: Request) -> Response:
        """Load the profile page: one call is one page view and records one visit."""
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        page = ProfileDashboard(store, user, services.summary_flow)
        await page.mount(_client_metadata(request, request.query_params.get("url")))
        expand = set(request.query_params.get("expand", "").split(","))
        if "profile_history" in expand:
            page.toggle_profile_history()
        if "visits" in expand:
            page.toggle_visit_history()
        return JSONResponse(page.render())

    @mcp.custom_route("/api/profile", methods=["GET"])
    async def get_profile(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        try:
            record = await store.current_profile(user.user_id)
        except BackendError as exc:
            return _backend_failure(exc)
        return JSONResponse(record.to_dict() if record else None)

    @mcp.custom_route("/api/profile", methods=["POST"])
    async def save_profile(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        body = await _json_body(request)
        if not isinstance(body, dict):
            return JSONResponse({"error": "request body must be a JSON object"}, status_code=400)
        fields = {key: value for key, value in body.items() if key != "user_id"}
        try:
            record = await store.upsert_profile(user.user_id, fields)
        except RecordValidationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        except BackendError as exc:
            return _backend_failure(exc)
        services.record_profile_saved(user.user_id)
        return JSONResponse(record.to_dict(), status_code=201)

    @mcp.custom_route("/api/profile/history", methods=["GET"])
    async def profile_history(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        try:
            history = await store.list_profile_history(user.user_id)
        except BackendError as exc:
            return _backend_failure(exc)
        return JSONResponse([p.to_dict() for p in history])

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    @mcp.custom_route("/api/visits", methods=["GET"])
    async def list_visits(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        try:
            visits = await store.list_visits(user.user_id)
        except BackendError as exc:
            return _backend_failure(exc)
        return JSONResponse([v.to_dict() for v in visits])

    @mcp.custom_route("/api/visits", methods=["POST"])
    async def record_visit(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        body = await _json_body(request)
        url = body.get("url") if isinstance(body, dict) else None
        try:
            visit = await store.record_visit(user.user_id, _client_metadata(request, url))
        except BackendError as exc:
            return _backend_failure(exc)
        return JSONResponse(visit.to_dict(), status_code=201)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @mcp.custom_route("/api/summary", methods=["POST"])
    async def summary(request: Request) -> Response:
        """Generate the signed-in user's summary; it is only ever mailed to their own address."""
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        body = await _json_body(request)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            return JSONResponse({"error": "request body must be a JSON object"}, status_code=400)
        result = await services.summary_flow.generate(
            user.user_id,
            email=user.email,
            name=user.name,
            send_email=body.get("send_email") is True,
        )
        if result.ok:
            status = 200
        else:
            status = _SUMMARY_STATUS.get(result.failure, 500)
        return JSONResponse(result.to_dict(), status_code=status)

    # ------------------------------------------------------------------
    # Google sign-in
    # ------------------------------------------------------------------

    @mcp.custom_route("/auth/signin", methods=["GET"])
    async def signin(request: Request) -> Response:
        identity = services.identity
        state = identity.new_state()
        try:
            url = identity.authorization_url(state)
        except ConfigurationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        request.session[SESSION_STATE_KEY] = state
        return RedirectResponse(url, status_code=302)

    @mcp.custom_route("/auth/callback", methods=["GET"])
    async def callback(request: Request) -> Response:
        params = request.query_params
        expected = request.session.pop(SESSION_STATE_KEY, None)
        if params.get("error"):
            return JSONResponse({"error": params["error"]}, status_code=400)
        code = params.get("code")
        if not code or not expected or params.get("state") != expected:
            return JSONResponse({"error": "Invalid sign-in callback"}, status_code=400)
        try:
            user = await services.identity.exchange_code(code)
        except ConfigurationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        except DashboardError as exc:
            logger.warning("Sign-in failed: %s", exc)
            return JSONResponse({"error": f"Sign-in failed: {exc}"}, status_code=502)
        request.session[SESSION_USER_KEY] = user.to_dict()
        return JSONResponse(user.to_dict())

    @mcp.custom_route("/auth/session", methods=["GET"])
    async def current_session(request: Request) -> Response:
        user = session_user(request)
        if user is None:
            return _not_signed_in()
        return JSONResponse(user.to_dict())

    @mcp.custom_route("/auth/signout", methods=["POST"])
    async def signout(request: Request) -> Response:
        request.session.clear()
        return JSONResponse({"signed_out": True})
