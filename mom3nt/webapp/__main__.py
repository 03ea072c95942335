"""Run the JSON API with Flask's development server: ``python -m mom3nt.webapp``."""

from __future__ import annotations

import logging
import os

from ..env import get_env
from . import create_app

LOGGER = logging.getLogger(__name__)


def main() -> None:
    app = create_app()
    port = int(get_env("PORT") or os.environ.get("PORT", 5001))
    LOGGER.info("Serving mom3nt API on port %s", port)
    app.run(host="0.0.0.0", port=port, debug=bool(os.environ.get("FLASK_DEBUG")))


if __name__ == "__main__":
    main()
