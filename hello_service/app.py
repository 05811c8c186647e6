"""
hello-service: answers every request with a greeting plus whatever the
downstream service returns.

Runs in two variants from the same handler: a baseline with no telemetry,
and an instrumented one that traces the downstream call and counts requests.
"""
import logging
import sys

from flask import Flask, request
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from werkzeug.routing import Rule

from hello_service.config import load_settings
from hello_service.downstream import DownstreamClient, DownstreamError
from hello_service.telemetry import NoopObserver, init_telemetry

logger = logging.getLogger(__name__)

GREETING = b"hello from go\n"
FALLBACK = "error fetching from {name}"


# ── Flask app ─────────────────────────────────────────────────────────────────
def create_app(client, observer=None, downstream_name="python", translate_breaks=False):
    # no static folder: its /static/ route would shadow the catch-all
    app = Flask(__name__, static_folder=None)
    observer = observer or NoopObserver()
    fallback = FALLBACK.format(name=downstream_name).encode()

    def hello(path):
        """Greeting plus the downstream body, or the fallback text on failure."""
        observer.request_received(request.path)

        try:
            with observer.fetch_span() as headers:
                body = client.fetch(headers=headers)
        except DownstreamError as exc:
            logger.warning("downstream call failed: %s", exc)
            body = fallback

        response = GREETING + body
        if translate_breaks:
            response = response.replace(b"<br>", b"\n")
        return response

    # Rules without a method list match every method, WebDAV verbs included.
    app.url_map.add(Rule("/", endpoint="hello", defaults={"path": ""}))
    app.url_map.add(Rule("/<path:path>", endpoint="hello"))
    app.view_functions["hello"] = hello

    return app


# ── Bootstrap ─────────────────────────────────────────────────────────────────
def build_app(settings, instrumented=False):
    """Return (app, telemetry); telemetry is None for the baseline."""
    client = DownstreamClient(settings.downstream_endpoint)
    if not instrumented:
        app = create_app(client, downstream_name=settings.downstream_name)
        return app, None

    telemetry = init_telemetry(settings)
    app = create_app(
        client,
        observer=telemetry.observer(),
        downstream_name=settings.downstream_name,
        translate_breaks=True,
    )
    FlaskInstrumentor().instrument_app(
        app,
        tracer_provider=telemetry.tracer_provider,
        meter_provider=telemetry.meter_provider,
    )
    return app, telemetry


def serve(instrumented=False):
    logging.basicConfig(level=logging.INFO)

    settings = load_settings()
    app, telemetry = build_app(settings, instrumented)
    host, port = settings.listen_address()

    logger.info("listening on port %s", settings.server_port)
    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        if telemetry is not None:
            telemetry.shutdown()


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    serve(instrumented="--instrumented" in argv)


def main_instrumented():
    serve(instrumented=True)


if __name__ == "__main__":
    main()
