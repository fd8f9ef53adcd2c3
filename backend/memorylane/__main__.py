"""
Run the API with uvicorn: `python -m memorylane`.

Host and port come from HOST / PORT (see config.py).
"""

import uvicorn

from memorylane.config import settings


def main() -> None:
    uvicorn.run(
        "memorylane.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
