"""HTTP API: sweep trigger, AI analysis, settings, resources and channel tests."""

import json
import logging
import time
from typing import Any, Dict, Iterator, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import db
from .ai_fallback import ClientFactory, create_client
from .analyzer import analyze_resources, ask_assistant, classify_ai_error, error_message, list_custom_models
from .config import AppConfig
from .expiry import today_in
from .llm_client import AIError, AIRequestError
from .messages import RenderedMessage, describe_changes
from .models import Resource
from .notifier import Notifier
from .schemas import AnalyzeIn, BulkImportIn, ChatIn, EmailTestIn, ModelsIn, TelegramTestIn, WebhookTestIn
from .sweep import run_sweep

logger = logging.getLogger(__name__)

MODELS_CACHE_TTL_SECONDS = 30 * 60

# Configuration problems the caller can fix; everything else is a backend failure.
_CLIENT_ERROR_CODES = {
    "MISSING_OPENAI_KEY",
    "MISSING_DEEPSEEK_KEY",
    "MISSING_OPENROUTER_KEY",
    "MISSING_GITHUB_MODELS",
    "MISSING_CUSTOM_BASE",
    "MISSING_GEMINI_KEY",
    "NO_AI_PROVIDER",
    "CUSTOM_ENDPOINT_NOT_FOUND",
    "UNSUPPORTED_PROVIDER",
}


def error_response(message: str, status: int = 400, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, **extra}, status_code=status)


def ai_error_response(error: BaseException) -> JSONResponse:
    code = classify_ai_error(error)
    if code in _CLIENT_ERROR_CODES:
        status = 400
    elif code == "AI_BACKEND_ERROR":
        status = 500
    else:
        status = 502
    if code == "AI_BACKEND_ERROR":
        logger.error(f"AI backend error: {error}", exc_info=error)
    else:
        logger.warning(f"AI request failed with {code}: {error}")
    return error_response(error_message(code), status, error_code=code)


def create_app(
    config: AppConfig,
    notifier: Optional[Notifier] = None,
    client_factory: ClientFactory = create_client,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Application configuration, threaded to every handler.
        notifier: Channel orchestrator; built from ``config`` when omitted.
        client_factory: Factory for AI clients.
    """
    app = FastAPI(title="CloudTrack Agent", version="0.1.0", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        allow_credentials=False,
    )
    app.state.config = config
    app.state.notifier = notifier or Notifier(config)

    def verify_key(x_api_key: str = Header(default="")):
        # An unset API_SECRET leaves the API open for local use.
        if config.server.api_secret and x_api_key != config.server.api_secret:
            raise HTTPException(status_code=401, detail="Unauthorized")

    def get_conn() -> Iterator:
        conn = db.init_db(config.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def _notify_change(conn, action: str, resource: Resource, changes=()) -> Dict[str, Any]:
        settings = db.get_global_settings(conn)
        result = app.state.notifier.notify_change(action, resource, settings, changes)
        return result.to_dict()

    protected = [Depends(verify_key)]

    @app.get("/health")
    def health():
        return {"ok": True, "service": "cloudtrack-agent", "time": time.time()}

    # ---------------- Sweep ----------------

    @app.post("/api/cron/trigger", dependencies=protected)
    def trigger_sweep(conn=Depends(get_conn)):
        try:
            report = run_sweep(conn, config, notifier=app.state.notifier)
        except Exception as e:
            logger.error(f"Cron job failed: {e}", exc_info=True)
            return error_response("Cron job failed", 500)
        return {"success": True, **report.to_dict()}

    # ---------------- AI ----------------

    @app.post("/api/ai/analyze", dependencies=protected)
    def analyze(body: AnalyzeIn, conn=Depends(get_conn)):
        if body.resources is None:
            resources = db.list_resources(conn)
        else:
            try:
                resources = [Resource.from_dict(db.normalize_resource(item)) for item in body.resources]
            except (KeyError, ValueError, TypeError) as e:
                return error_response(f"Invalid resources: {e}", 400)
        try:
            result = analyze_resources(
                resources,
                config.ai,
                provider=body.provider,
                model=body.model,
                custom_id=body.customId,
                today=today_in(config.sweep.timezone),
                client_factory=client_factory,
            )
        except Exception as e:
            return ai_error_response(e)
        return {"success": True, "analysis": result.text, "provider": result.provider, "model": result.model}

    @app.post("/api/ai/chat", dependencies=protected)
    def chat(body: ChatIn, conn=Depends(get_conn)):
        resources = db.list_resources(conn)
        try:
            result = ask_assistant(
                resources,
                body.question,
                config.ai,
                today=today_in(config.sweep.timezone),
                client_factory=client_factory,
            )
        except Exception as e:
            return ai_error_response(e)
        reply = result.text.strip()
        if not reply:
            return error_response("The AI returned an empty reply. Check the model name and endpoint path.", 502,
                                  error_code="AI_BACKEND_ERROR")
        return {"success": True, "reply": reply, "provider": result.provider, "model": result.model}

    @app.post("/api/ai/models", dependencies=protected)
    def models(body: ModelsIn, conn=Depends(get_conn)):
        if body.provider != "custom":
            return error_response("Unsupported provider", 400, error_code="UNSUPPORTED_PROVIDER")

        custom_id = (body.customId or "").strip() or None
        cache_key = f"ai_models_cache:custom:{custom_id or 'default'}"
        if not body.force:
            raw = db.get_meta(conn, cache_key)
            if raw:
                try:
                    cached = json.loads(raw)
                except ValueError:
                    cached = {}
                if cached.get("models") is not None and time.time() - cached.get("ts", 0) <= MODELS_CACHE_TTL_SECONDS:
                    return {"success": True, "provider": "custom", "customId": custom_id,
                            "models": cached["models"], "cached": True}

        try:
            model_ids = list_custom_models(config.ai, custom_id)
        except AIError as e:
            return error_response(e.message, 400, error_code=e.code)
        except AIRequestError as e:
            status = e.status if e.status and e.status >= 400 else 502
            return error_response(f"Failed to fetch models: {e}", status)

        db.set_meta(conn, cache_key, json.dumps({"ts": time.time(), "models": model_ids}))
        return {"success": True, "provider": "custom", "customId": custom_id, "models": model_ids, "cached": False}

    # ---------------- Settings ----------------

    @app.get("/api/v1/settings", dependencies=protected)
    def get_settings(conn=Depends(get_conn)):
        return db.get_global_settings(conn).to_dict()

    @app.post("/api/v1/settings", dependencies=protected)
    def save_settings(body: Dict[str, Any], conn=Depends(get_conn)):
        settings = db.save_global_settings(conn, body)
        return {"success": True, "data": settings.to_dict()}

    # ---------------- Resources ----------------

    @app.get("/api/v1/resources", dependencies=protected)
    def list_all(conn=Depends(get_conn)):
        data = db.export_resources(conn)
        return {"success": True, "count": len(data), "data": data}

    @app.get("/api/v1/resources/export", dependencies=protected)
    def export_all(conn=Depends(get_conn)):
        return {"success": True, "resources": db.export_resources(conn)}

    @app.post("/api/v1/resources/bulk", dependencies=protected)
    def bulk(body: BulkImportIn, conn=Depends(get_conn)):
        count = db.bulk_import(conn, body.resources, body.mode)
        if count == 0:
            return {"success": True, "count": 0, "message": "No valid resources to import"}
        return {"success": True, "count": count, "message": f"Successfully imported {count} resources."}

    @app.post("/api/v1/resources", status_code=201, dependencies=protected)
    def create(body: Dict[str, Any], conn=Depends(get_conn)):
        try:
            data = db.insert_resource(conn, body)
        except ValueError as e:
            return error_response(str(e), 400)
        notification = _notify_change(conn, "created", Resource.from_dict(data))
        return {"success": True, "data": data, "notification": notification}

    @app.get("/api/v1/resources/{resource_id}", dependencies=protected)
    def get_one(resource_id: str, conn=Depends(get_conn)):
        data = db.get_resource_dict(conn, resource_id)
        if data is None:
            return error_response("Resource not found", 404)
        return {"success": True, "data": data}

    @app.put("/api/v1/resources/{resource_id}", dependencies=protected)
    def update(resource_id: str, body: Dict[str, Any], conn=Depends(get_conn)):
        before = db.get_resource_dict(conn, resource_id)
        if before is None:
            return error_response("Resource not found", 404)
        try:
            data = db.update_resource(conn, resource_id, body)
        except ValueError as e:
            return error_response(f"Update failed: {e}", 400)
        notification = _notify_change(conn, "updated", Resource.from_dict(data), describe_changes(before, data))
        return {"success": True, "data": data, "notification": notification}

    @app.delete("/api/v1/resources/{resource_id}", dependencies=protected)
    def delete(resource_id: str, conn=Depends(get_conn)):
        data = db.delete_resource(conn, resource_id)
        if data is None:
            return error_response("Resource not found", 404)
        notification = _notify_change(conn, "deleted", Resource.from_dict(data))
        return {"success": True, "message": "Resource deleted", "id": resource_id, "notification": notification}

    # ---------------- Channel tests ----------------

    @app.post("/api/telegram", dependencies=protected)
    def test_telegram(body: TelegramTestIn):
        sender = app.state.notifier.telegram
        if not sender.configured:
            return JSONResponse({"ok": False, "description": "TELEGRAM_BOT_TOKEN is not configured."}, status_code=500)
        text = body.message or "🔔 CloudTrack: this is a test notification. Your configuration works!"
        result = sender.send_text(body.chatId, text, parse_mode="HTML")
        return JSONResponse({"ok": result.ok, "description": result.error}, status_code=200 if result.ok else 502)

    @app.post("/api/email", dependencies=protected)
    def test_email(body: EmailTestIn):
        sender = app.state.notifier.email
        if not sender.configured:
            return JSONResponse({"ok": False, "description": "RESEND_API_KEY / RESEND_FROM is not configured."},
                                status_code=500)
        message = RenderedMessage(
            subject=body.subject or "CloudTrack email notification",
            html=body.html or "This is a test email from CloudTrack.",
            text=body.text or "This is a test email from CloudTrack.",
        )
        result = sender.send(body.to, message)
        return JSONResponse({"ok": result.ok, "description": result.error}, status_code=200 if result.ok else 502)

    @app.post("/api/webhook/test", dependencies=protected)
    def test_webhook(body: WebhookTestIn, conn=Depends(get_conn)):
        url = body.url or db.get_global_settings(conn).webhook.url
        if not url:
            return JSONResponse({"ok": False, "description": "Missing webhook URL"}, status_code=400)
        result = app.state.notifier.webhook.send(url, {
            "event": "test",
            "resource": None,
            "days_remaining": None,
            "message": "CloudTrack webhook test",
        })
        return JSONResponse({"ok": result.ok, "description": result.error}, status_code=200 if result.ok else 502)

    return app
