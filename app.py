"""Gunicorn entrypoint: ``gunicorn app:app``."""

import os

from heic_converter import create_app

app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
