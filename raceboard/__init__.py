import logging
import time

from flask import Flask, g, request

from .config import load_config
from .datastore import RaceDataStore

MAX_UPLOAD_SIZE = 1024 * 1024  # 1MB


def create_app(config=None):
    app = Flask(__name__)

    settings = load_config() if config is None else config
    logging.basicConfig(level=settings.get("log_level", "INFO"))
    app.logger.setLevel(settings.get("log_level", "INFO"))
    app.logger.info(
        "config server port: %s data dir: %s race data file: %s",
        settings["port"], settings["data_dir"], settings["race_data"],
    )
    app.config.update(
        MAX_CONTENT_LENGTH=MAX_UPLOAD_SIZE,
        RACEBOARD=settings,
    )

    # A broken season index aborts startup; everything later is reported per request
    app.extensions["race_data"] = RaceDataStore(settings["data_dir"], settings["race_data"])

    from . import routes
    app.register_blueprint(routes.bp)

    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_duration(response):
        started = g.pop("request_started", None)
        if started is not None:
            app.logger.info("<- %s time: %.3fs", request.full_path.rstrip("?"), time.perf_counter() - started)
        return response

    return app
