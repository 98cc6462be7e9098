import logging
import os
import pydantic
import sys

from flask import Flask, request, current_app

from models import AdmissionReview, PolicyConfig
from codec import EnvelopeCodec
from decisions import DecisionMode, decide
from exc import ApplicationError, ConfigurationError

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class DEFAULTS:
    REQUIRED_NAME = "dallas-demo"
    PROD_ANNOTATION = "tunde.meetup.com/prod"
    LABEL_NAME = "env"
    LABEL_VALUE = "prod"
    HOST = "0.0.0.0"
    PORT = 8443
    TLS_CERT_FILE = "/tls/tls.crt"
    TLS_KEY_FILE = "/tls/tls.key"


def envelope_response():
    """Encodes an AdmissionReview returned by a view function as JSON."""

    def _outer(func):
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, AdmissionReview):
                return (
                    current_app.codec.encode(res),
                    200,
                    {"content-type": "application/json"},
                )
            else:
                return res

        return _inner

    return _outer


@envelope_response()
def review(mode: DecisionMode):
    body = request.get_data()
    if not body:
        LOG.error("empty body")
        return "empty body", 400, {"content-type": "text/plain"}

    content_type = request.headers.get("Content-Type")
    if content_type != "application/json":
        LOG.error("Content-Type=%s, expect application/json", content_type)
        return (
            "invalid Content-Type, expect `application/json`",
            415,
            {"content-type": "text/plain"},
        )

    codec = current_app.codec
    try:
        inbound = codec.decode(body)
    except pydantic.ValidationError as err:
        LOG.error("can't decode body: %s", err)
        return codec.failure(body, str(err))

    if inbound.request is None:
        LOG.error("admission review does not contain a request")
        return codec.failure(
            body, "admission review does not contain a request", inbound.apiVersion
        )

    req = inbound.request
    LOG.info(
        "%s request uid=%s operation=%s namespace=%s name=%s",
        mode,
        req.uid,
        req.operation,
        req.namespace,
        req.name,
    )

    response = decide(mode, req, current_app.policy)
    response.uid = req.uid
    LOG.info("%s request uid=%s allowed=%s", mode, req.uid, response.allowed)

    return codec.respond(response, inbound.apiVersion)


def handle_applicationerror(err):
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def policy_from_config(config) -> PolicyConfig:
    for key in ("REQUIRED_NAME", "PROD_ANNOTATION", "LABEL_NAME"):
        if not config.get(key):
            raise ConfigurationError(f"missing {key} configuration")

    # WEBHOOK_* values are JSON-decoded, so "123" or "true" arrive as non-strings.
    try:
        return PolicyConfig(
            required_name=config["REQUIRED_NAME"],
            prod_annotation=config["PROD_ANNOTATION"],
            label_name=config["LABEL_NAME"],
            label_value=config["LABEL_VALUE"],
        )
    except pydantic.ValidationError as err:
        raise ConfigurationError(f"invalid policy configuration: {err}")


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    Configuration comes from DEFAULTS, then from WEBHOOK_* environment
    variables, then from keyword arguments.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("WEBHOOK")
    if config:
        app.config.update(config)

    app.policy = policy_from_config(app.config)
    app.codec = EnvelopeCodec()

    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    for mode in DecisionMode:
        app.add_url_rule(
            f"/{mode}",
            endpoint=str(mode),
            view_func=review,
            methods=["POST"],
            defaults={"mode": mode},
        )

    return app


def main():
    try:
        app = create_app()
    except ConfigurationError as err:
        LOG.error("%s", err)
        sys.exit(1)

    cert, key = app.config["TLS_CERT_FILE"], app.config["TLS_KEY_FILE"]
    for path in (cert, key):
        if not os.path.isfile(path):
            LOG.error("TLS file not found at %s", path)
            sys.exit(1)

    LOG.info("starting webhook server on port %s", app.config["PORT"])
    app.run(
        host=app.config["HOST"],
        port=int(app.config["PORT"]),
        ssl_context=(cert, key),
    )


if __name__ == "__main__":
    main()
