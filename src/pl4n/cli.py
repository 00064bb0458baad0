"""CLI for pl4n: init, list, status, wait, continue, approve, archive, clean, diff and serve."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Callable, Optional

from rich.console import Console

from .commands import SessionCommands
from .config import Config, load_config
from .errors import Pl4nError, ValidationError
from .logging_config import setup_logging
from .session.store import SessionManager

logger = logging.getLogger(__name__)

CommandFunc = Callable[[argparse.Namespace, Config], dict]


def output_json(data: dict[str, Any], pretty: bool = False) -> None:
	"""Print the single JSON object every invocation emits."""
	if pretty:
		Console().print_json(json.dumps(data))
	else:
		print(json.dumps(data))


def _commands(config: Config) -> SessionCommands:
	return SessionCommands(SessionManager(config.pl4n_dir), config)


def _session_id(args: argparse.Namespace) -> str:
	if not args.session:
		raise ValidationError("Missing --session")
	return args.session


def cmd_init(args: argparse.Namespace, config: Config) -> dict:
	config.ensure_dirs()
	return _commands(config).init(args.task)


def cmd_list(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).list(include_archived=args.all)


def cmd_status(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).status(_session_id(args))


def cmd_wait(args: argparse.Namespace, config: Config) -> dict:
	return asyncio.run(_commands(config).wait(_session_id(args)))


def cmd_continue(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).continue_(_session_id(args))


def cmd_approve(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).approve(_session_id(args))


def cmd_archive(args: argparse.Namespace, config: Config) -> dict:
	archived = None
	if args.restore:
		archived = False
	return _commands(config).archive(_session_id(args), archived)


def cmd_clean(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).clean(_session_id(args))


def cmd_diff(args: argparse.Namespace, config: Config) -> dict:
	return _commands(config).diff(_session_id(args))


def cmd_serve(args: argparse.Namespace, config: Config) -> dict:
	"""Print the access URL, then serve until interrupted."""
	from .web import run_server

	config.ensure_dirs()
	token = SessionManager(config.pl4n_dir).ensure_global_token()
	url = f"http://{args.host}:{args.port}/?t={token}"
	output_json({"url": url, "hint": "Open the URL to list and edit sessions"}, args.pretty)
	sys.stdout.flush()

	run_server(config, host=args.host, port=args.port, open_url=None if args.no_open else url)
	return {"stopped": True}


class JSONArgumentParser(argparse.ArgumentParser):
	"""Raises usage errors so they are reported as JSON instead of exiting with code 2."""

	def error(self, message: str):
		raise ValidationError(f"{self.prog}: {message}")


def _error_result(error: Exception, args: argparse.Namespace, config: Optional[Config]) -> dict:
	"""JSON for an unexpected failure, with the session position when it can still be read."""
	data: dict[str, Any] = {"error": str(error) or type(error).__name__}
	session_id = getattr(args, "session", None)
	if config is None or not session_id:
		return data
	try:
		state = SessionManager(config.pl4n_dir).load_session(session_id)
	except Exception as e:
		logger.warning(f"Could not read session {session_id}: {e}")
		return data
	if state is not None:
		data["turn"] = state.turn
		data["phase"] = state.phase.value
	return data


def build_parser() -> argparse.ArgumentParser:
	# Global flags are accepted before or after the subcommand
	common = argparse.ArgumentParser(add_help=False)
	common.add_argument("--pl4n-dir", default=argparse.SUPPRESS, help="Storage root (default: ./.pl4n)")
	common.add_argument("--pretty", action="store_true", default=argparse.SUPPRESS, help="Pretty print JSON output")

	parser = JSONArgumentParser(
		prog="pl4n",
		description="Multi-agent planning: parallel drafts, peer review and synthesis, edited by you",
		parents=[common],
	)
	parser.set_defaults(pl4n_dir=None, pretty=False)
	subparsers = parser.add_subparsers(dest="command")

	def add(name: str, func: CommandFunc, help_text: str, session: bool = True) -> argparse.ArgumentParser:
		sub = subparsers.add_parser(name, help=help_text, parents=[common])
		if session:
			sub.add_argument("--session", default=None, help="Session ID")
		sub.set_defaults(func=func)
		return sub

	# init
	init_parser = add("init", cmd_init, "Start a new planning session", session=False)
	init_parser.add_argument("task", help="Task description")

	# list
	list_parser = add("list", cmd_list, "List planning sessions", session=False)
	list_parser.add_argument("--all", action="store_true", help="Include archived sessions")

	add("status", cmd_status, "Check session status without blocking")

	# wait
	wait_parser = add("wait", cmd_wait, "Block until the current turn is complete")
	wait_parser.add_argument("--timeout", type=float, default=None, help="Per-agent-call timeout in seconds")

	add("continue", cmd_continue, "Done editing, start the next turn")
	add("approve", cmd_approve, "Lock the current plan as final")

	# archive
	archive_parser = add("archive", cmd_archive, "Toggle whether a session is archived")
	archive_parser.add_argument("--restore", action="store_true", help="Unarchive instead of toggling")

	add("clean", cmd_clean, "Remove a session and its data")
	add("diff", cmd_diff, "Show changes between the last two turns")

	# serve
	serve_parser = add("serve", cmd_serve, "Run the web editing server", session=False)
	serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
	serve_parser.add_argument("--port", type=int, default=8420, help="Server port (default: 8420)")
	serve_parser.add_argument("--no-open", action="store_true", help="Don't auto-open browser")

	return parser


def run(argv: Optional[list[str]] = None) -> int:
	"""Run one command; returns the exit code."""
	parser = build_parser()
	try:
		args = parser.parse_args(argv)
	except ValidationError as e:
		output_json(e.to_dict())
		return 1

	if not args.command:
		parser.print_help(sys.stderr)
		output_json({"error": "Missing command"}, args.pretty)
		return 1

	config = None
	try:
		config = load_config(pl4n_dir=args.pl4n_dir, timeout=getattr(args, "timeout", None))
		log_dir = config.log_dir if config.pl4n_dir.exists() else None
		setup_logging(level=config.log_level, log_dir=log_dir)
		result = args.func(args, config)
	except Pl4nError as e:
		logger.info(f"{args.command} failed: {e}")
		output_json(e.to_dict(), args.pretty)
		return 1
	except Exception as e:
		logger.exception(f"{args.command} failed")
		output_json(_error_result(e, args, config), args.pretty)
		return 1

	output_json(result, args.pretty)
	return 0


def main() -> None:
	"""CLI entry point."""
	sys.exit(run())


if __name__ == "__main__":
	main()
