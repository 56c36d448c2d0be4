import sys
import logging
from flask import Flask
from dotenv import load_dotenv


def create_app(start_scheduler=None):
    load_dotenv()
    load_dotenv(".env.secret")
    app = Flask(__name__)

    # =========================================================
    # Logging: gunicorn handlers when served, plus stdout
    # =========================================================
    gunicorn_error = logging.getLogger("gunicorn.error")
    app.logger.handlers = gunicorn_error.handlers
    app.logger.setLevel(logging.INFO)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.INFO)
    sh.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
    app.logger.addHandler(sh)

    # config reads the environment at import time
    from .config import SCHEDULER_ENABLED

    # =========================================================
    # Blueprints
    # =========================================================
    from .routes.orders import bp as orders_bp
    from .routes.register import bp as register_bp
    from .routes.setup_metafields import bp as setup_bp

    app.register_blueprint(orders_bp, url_prefix="/api/orders")
    app.register_blueprint(register_bp, url_prefix="/register_webhooks")
    app.register_blueprint(setup_bp, url_prefix="/setup/metafields")

    # =========================================================
    # Status
    # =========================================================
    @app.get("/")
    def index():
        return {"message": "Server is running", "status": "ok"}, 200

    @app.get("/health")
    def health():
        app.logger.info("Health check endpoint called")
        return {"ok": True}, 200

    from .commands import register_commands
    register_commands(app)

    if start_scheduler is None:
        start_scheduler = SCHEDULER_ENABLED
    if start_scheduler:
        from .scheduler import start_scheduler as _start
        app.extensions["scheduler"] = _start()

    return app
