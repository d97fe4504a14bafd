from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

from flask import Flask, render_template, request, url_for

from .errors import BackendError, NotFoundError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, stream=sys.stdout)
    logging.getLogger().setLevel(log_level)

    # Supabase's HTTP stack logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


def fmt_date(value) -> str:
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except Exception:
        return str(value)
    return dt.strftime("%b %d, %Y")


def fmt_dt(value) -> str:
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except Exception:
        return str(value)
    return dt.strftime("%d-%m-%Y %I:%M %p")


def init_extensions(app: Flask) -> None:
    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    app.add_template_filter(fmt_date, "fmt_date")
    app.add_template_filter(fmt_dt, "fmt_dt")

    @app.template_global("static_asset")
    def static_asset(filename: str | None) -> str | None:
        """URL for an image if it is remote or shipped under static/, else None."""
        if not filename:
            return None
        if filename.startswith(("http://", "https://")):
            return filename
        if not app.static_folder or not os.path.isfile(os.path.join(app.static_folder, filename)):
            return None
        return url_for("static", filename=filename)

    @app.context_processor
    def inject_toasts():
        return {
            "site_name": app.config.get("SITE_NAME", "PrepBankerHub"),
            "toast_success": (request.args.get("success") or "").strip() or None,
            "toast_error": (request.args.get("error") or "").strip() or None,
        }

    @app.errorhandler(BackendError)
    def handle_backend_error(exc: BackendError):
        logger.error("Unhandled backend error on %s: %s", request.path, exc.message)
        return render_template("error.html", page_title="Service unavailable", message=exc.message), 503

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return render_template("error.html", page_title="Not found", message=exc.message), 404

    @app.errorhandler(404)
    def handle_404(exc):
        return render_template("error.html", page_title="Not found", message="Page not found"), 404
