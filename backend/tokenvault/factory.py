"""Application factory wiring Flask extensions, token services and the sweep."""

from __future__ import annotations

from flask import Flask

from tokenvault.core.config import BaseConfig, get_config
from tokenvault.core.logger import configure_logging
from tokenvault.services._shared.errors import ConfigurationError

PLACEHOLDER_HASH_KEY = "CHANGE_ME_TOKEN_HASH"


def _check_secrets(app: Flask) -> None:
    """Refuse to boot a production app with the development HMAC key."""
    if app.debug or app.testing:
        return
    if app.config.get("TOKEN_HASH_KEY") in (None, "", PLACEHOLDER_HASH_KEY):
        raise ConfigurationError("TOKEN_HASH_KEY must be set outside development and testing.")


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application."""

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from tokenvault.core import extensions

    extensions.init_app(app)

    _check_secrets(app)

    from tokenvault.services import sessions

    sessions.init_app(app)

    from tokenvault import cli as tokenvault_cli

    tokenvault_cli.init_app(app)

    from tokenvault.core.scheduler import init_scheduler

    init_scheduler(app)

    return app
