# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Run the API server.

    python -m src.server
"""

import logging

import uvicorn

from src.config.loader import get_bool_env, get_int_env, get_str_env


def main() -> None:
    log_level = get_str_env("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    host = get_str_env("HOST", "0.0.0.0")
    port = get_int_env("PORT", 5000)
    reload = get_bool_env("RELOAD", False)
    uvicorn.run("src.server.app:app", host=host, port=port, reload=reload, log_level=log_level.lower())


if __name__ == "__main__":
    main()
