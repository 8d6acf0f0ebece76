# Overview: WSGI entrypoint (gunicorn wsgi:app, or python wsgi.py for local runs).

import os

from orderdesk import create_app

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
