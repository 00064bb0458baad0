"""Centralized logging configuration for pl4n."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def setup_logging(
	name: str = "pl4n",
	level: Optional[str] = None,
	log_dir: Optional[Path] = None,
) -> logging.Logger:
	"""
	Set up logging with a console handler and an optional rotating file handler.

	The console handler writes to stderr: stdout is reserved for the single
	JSON object every CLI invocation prints.

	Args:
		name: Logger name (the package logger by default)
		level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to PL4N_LOG_LEVEL or WARNING.
		log_dir: Directory for log files; no file handler when omitted

	Returns:
		Configured logger
	"""
	level = level or os.getenv("PL4N_LOG_LEVEL", "WARNING")
	log_level = getattr(logging, level.upper(), logging.WARNING)

	logger = logging.getLogger(name)
	logger.setLevel(logging.DEBUG if log_dir else log_level)

	# Avoid duplicate handlers
	if logger.handlers:
		return logger

	detailed_formatter = logging.Formatter(
		"%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
		datefmt="%Y-%m-%d %H:%M:%S",
	)
	simple_formatter = logging.Formatter(
		"%(asctime)s [%(levelname)s] %(message)s",
		datefmt="%H:%M:%S",
	)

	console_handler = logging.StreamHandler(sys.stderr)
	console_handler.setLevel(log_level)
	console_handler.setFormatter(simple_formatter)
	logger.addHandler(console_handler)

	if log_dir is not None:
		log_dir.mkdir(parents=True, exist_ok=True)
		file_handler = RotatingFileHandler(
			log_dir / f"{name}.log",
			maxBytes=10 * 1024 * 1024,  # 10 MB
			backupCount=5,
			encoding="utf-8",
		)
		file_handler.setLevel(logging.INFO)
		file_handler.setFormatter(detailed_formatter)
		logger.addHandler(file_handler)

	return logger
