"""Run the attendance API locally.

Note: Settings come from APP_ENV / .env, same as the app factory.
"""

from __future__ import annotations

import os

from time_attendance.main import create_app


def main() -> None:
    app = create_app()
    port = int(os.getenv("PORT", "5000"))
    app.run(host=os.getenv("HOST", "127.0.0.1"), port=port, debug=app.config["DEBUG"])


if __name__ == "__main__":
    main()
