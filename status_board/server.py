from __future__ import annotations

import uvicorn

from status_board.config import load_config
from status_board.main import configure_logging
from status_board.web import create_app


def main() -> None:
    config = load_config()
    configure_logging(config.log_level)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
