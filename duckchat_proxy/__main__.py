"""Run the proxy with uvicorn: ``python -m duckchat_proxy``."""

import uvicorn

from .main import SERVER_HOST, SERVER_PORT, app


def main() -> None:
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT, log_level="info")


if __name__ == "__main__":
    main()
