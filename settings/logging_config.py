from __future__ import annotations

import logging
from logging.config import dictConfig

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("botocore", "aiobotocore", "urllib3", "httpx", "httpcore", "google.auth", "multipart")


def configure_logging(level: int | str = logging.INFO) -> None:
	"""
	Console logging for the API process and the statement worker.

	`level` accepts a logging constant or a name such as "DEBUG".
	"""
	if isinstance(level, str):
		level = logging.getLevelName(level.upper())
		if not isinstance(level, int):
			level = logging.INFO

	loggers: dict[str, dict] = {
		"": {"handlers": ["console"], "level": level},
		"uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
		"arq": {"handlers": ["console"], "level": level, "propagate": False},
	}
	for name in NOISY_LOGGERS:
		loggers[name] = {"level": max(level, logging.WARNING)}

	dictConfig(
		{
			"version": 1,
			"disable_existing_loggers": False,
			"formatters": {
				"pipeline": {"format": "%(asctime)s %(levelname)s [%(process)d] %(name)s: %(message)s"}
			},
			"handlers": {
				"console": {
					"class": "logging.StreamHandler",
					"formatter": "pipeline",
					"level": level,
				}
			},
			"loggers": loggers,
		}
	)
