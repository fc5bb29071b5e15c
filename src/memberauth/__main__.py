"""memberauth entrypoint.

Run with:
  python -m memberauth
"""

import uvicorn

from memberauth.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("memberauth.app:app", host=settings.host, port=settings.port, reload=settings.reload)


if __name__ == "__main__":
    main()
