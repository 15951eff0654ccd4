# babyguess/__main__.py
from __future__ import annotations

import uvicorn

from babyguess.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("babyguess.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
