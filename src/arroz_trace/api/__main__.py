# src/arroz_trace/api/__main__.py
from __future__ import annotations

import uvicorn

from arroz_trace.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so ARROZ_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from arroz_trace.api.app import create_app
    from arroz_trace.runtime.trace_config import load_trace_config
    from arroz_trace.util.structured_logging import configure_structured_logging

    cfg = load_trace_config()
    configure_structured_logging(cfg.log_level)

    uvicorn.run(create_app(cfg=cfg), host=cfg.api_host, port=cfg.api_port, log_level="info")


if __name__ == "__main__":
    main()
