"""Application entry point for the Computron job intake bot."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from flask import Flask, jsonify, request
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from slack_sdk import WebClient

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from computron.background import run_async
from computron.config import AppSettings, get_settings
from computron.idempotency import ALREADY_COMPLETED
from computron.jobs import is_job_token
from computron.logging_config import configure_logging, install_exception_hooks
from computron.messages import CREW_CHIEF_ACTION_ID
from computron.services import Services, build_services
from computron.slack_client import slack_error_code
from computron.webhooks import WebhookResponse, handle_closeout, handle_deal_created, handle_moisture_check

SLACKBOT_USER_ID = "USLACKBOT"
HEALTH_TEXT = "Computron is alive!"

_SUPPRESSED_TEXT = {
    ALREADY_COMPLETED: "The intake workflow has already run in this channel.",
}
_DEFAULT_SUPPRESSED_TEXT = "The intake workflow was just started for this channel. Please wait a moment."


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings."""

    return SlackApp(
        signing_secret=settings.signing_secret,
        client=WebClient(token=settings.bot_token, timeout=int(settings.http_timeout_seconds)),
        token_verification_enabled=False,
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _handle_member_joined(event, services: Services, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    event = event or {}
    channel_id = event.get("channel")
    log = structlog.get_logger().bind(trace_id=trace_id, channel=channel_id, user_id=event.get("user"))

    try:
        if event.get("user") == SLACKBOT_USER_ID or not channel_id:
            return

        try:
            channel_name = services.slack.channel_name(channel_id)
        except SLACK_CALL_ERRORS as exc:
            log.error("member_joined_channel_lookup_failed", error=slack_error_code(exc))
            return

        if not is_job_token(channel_name):
            log.info("member_joined_ignored", reason="not_a_job_channel")
            return

        decision = services.guard.should_start(channel_id)
        if not decision.allowed:
            log.info("intake_suppressed", trigger="member_joined_channel", reason=decision.reason)
            return

        run_async(
            services.intake.start_after_delay,
            channel_id,
            services.settings.join_delay_seconds,
            trace_id=trace_id,
        )
    except Exception:
        logger.exception("Error in member_joined_channel handler", extra={"channel": channel_id})
    finally:
        unbind_contextvars("trace_id")


def _handle_start_command(ack, command, respond, services: Services, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    channel_id = (command or {}).get("channel_id")
    log = structlog.get_logger().bind(trace_id=trace_id, channel=channel_id)

    try:
        ack()
        log.info("slash_command_received", command=command.get("command"), user_id=command.get("user_id"))
        if not channel_id:
            return

        decision = services.guard.should_start(channel_id)
        if not decision.allowed:
            log.info("intake_suppressed", trigger="slash_command", reason=decision.reason)
            respond(
                text=_SUPPRESSED_TEXT.get(decision.reason, _DEFAULT_SUPPRESSED_TEXT),
                response_type="ephemeral",
            )
            return

        run_async(services.intake.run_intake, channel_id, trace_id=trace_id)
    except Exception:
        logger.exception("Error in /start handler", extra={"channel": channel_id})
    finally:
        unbind_contextvars("trace_id")


def _handle_crew_chief_selection(ack, body, services: Services, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    body = body or {}
    log = structlog.get_logger().bind(trace_id=trace_id)

    try:
        ack()
        channel_id = (body.get("channel") or {}).get("id") or (body.get("container") or {}).get("channel_id")
        actions = body.get("actions") or [{}]
        crew_chief_id = actions[0].get("selected_user")
        acting_user_id = (body.get("user") or {}).get("id")

        if not channel_id or not crew_chief_id:
            log.warning("crew_chief_selection_incomplete", channel=channel_id, crew_chief=crew_chief_id)
            return

        run_async(
            services.crew_chief.assign,
            channel_id=channel_id,
            crew_chief_id=crew_chief_id,
            acting_user_id=acting_user_id,
            trace_id=trace_id,
        )
    except Exception:
        logger.exception("Error in crew chief assignment handler")
    finally:
        unbind_contextvars("trace_id")


def _register_event_handlers(bolt_app: SlackApp, services: Services) -> None:
    @bolt_app.event("member_joined_channel")
    def handle_member_joined(event, logger):
        _handle_member_joined(event=event, services=services, logger=logger)


def _register_slash_handlers(bolt_app: SlackApp, services: Services) -> None:
    @bolt_app.command("/start")
    def handle_start(ack, command, respond, logger):
        _handle_start_command(ack=ack, command=command, respond=respond, services=services, logger=logger)


def _register_action_handlers(bolt_app: SlackApp, services: Services) -> None:
    @bolt_app.action(CREW_CHIEF_ACTION_ID)
    def handle_crew_chief(ack, body, logger):
        _handle_crew_chief_selection(ack=ack, body=body, services=services, logger=logger)


def _register_bolt_error_handler(bolt_app: SlackApp) -> None:
    @bolt_app.error
    def handle_listener_error(error, body, logger):
        logger.exception("Unhandled Slack listener error", exc_info=error)


def _webhook_reply(result: WebhookResponse):
    return jsonify(result.body), result.status_code


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    settings = get_settings()
    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        install_exception_hooks()
        _LOGGING_CONFIGURED = True

    bolt_app = _create_bolt_app(settings)
    services = build_services(settings, bolt_app.client)
    handler = SlackRequestHandler(bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_event_handlers(bolt_app, services)
    _register_slash_handlers(bolt_app, services)
    _register_action_handlers(bolt_app, services)
    _register_bolt_error_handler(bolt_app)

    @flask_app.route("/slack/events", methods=["GET", "POST"])
    def slack_events():
        return handler.handle(request)

    @flask_app.route("/", methods=["GET", "POST"])
    def index():
        if request.method == "POST":
            return handler.handle(request)
        return HEALTH_TEXT, 200

    @flask_app.route("/trigger-mc-form", methods=["POST"])
    def trigger_mc_form():
        payload = request.get_json(silent=True)
        return _webhook_reply(handle_moisture_check(payload, slack_client=services.slack))

    @flask_app.route("/send-closeout-message", methods=["POST"])
    def send_closeout_message():
        payload = request.get_json(silent=True)
        return _webhook_reply(handle_closeout(payload, slack_client=services.slack))

    @flask_app.route("/deal-created-task", methods=["POST"])
    def deal_created_task():
        payload = request.get_json(silent=True)
        result = handle_deal_created(
            payload,
            crm_client=services.crm,
            service_field=services.settings.service_type_field,
            allowlist=services.settings.service_type_allowlist,
            subject=services.settings.activity_subject,
            today=services.today,
        )
        return _webhook_reply(result)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")

        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:  # pragma: no cover
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=get_settings().port)
