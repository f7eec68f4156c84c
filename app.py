"""Application entry point for the salon booking web service."""

import os

from salonbooking.webapp import create_app

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), debug=True)
