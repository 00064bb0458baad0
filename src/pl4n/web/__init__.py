"""Web editing surface for pl4n sessions."""

from __future__ import annotations

import webbrowser
from typing import Optional

from ..config import Config


def create_app(config: Optional[Config] = None) -> object:
	"""Create the Starlette ASGI application."""
	from ..config import load_config
	from .app import build_app

	return build_app(config or load_config())


def run_server(
	config: Config,
	host: str = "127.0.0.1",
	port: int = 8420,
	open_url: Optional[str] = None,
) -> None:
	"""Run the editing server until interrupted."""
	try:
		import uvicorn
	except ImportError:
		raise SystemExit(
			"Web extras not installed. Install with: pip install -e '.[web]'"
		)

	app = create_app(config)

	if open_url:
		import threading

		def _open():
			import time
			time.sleep(0.8)
			webbrowser.open(open_url)

		threading.Thread(target=_open, daemon=True).start()

	uvicorn.run(app, host=host, port=port, log_level="warning")
