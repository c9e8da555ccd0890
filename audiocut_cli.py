#!/usr/bin/env python3

import sys
import argparse
import yaml
from audiocutlib.core import config
from audiocutlib.core import utils
from audiocutlib.core.errors import CancelledError
from audiocutlib.core.errors import EmptyResultError
from audiocutlib.core.errors import ProcessingError
from audiocutlib.core.errors import ValidationError
from audiocutlib.core.project import EditSession
from audiocutlib.media import ffmpeg

#============================================

EXIT_OK = 0
EXIT_PROCESSING = 1
EXIT_INVALID = 2

#============================================

def parse_args(argv: list = None):
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Plan, render and verify audio edits")
	parser.add_argument('-i', '--input', dest='input_file', required=True,
		help='input audio file')
	parser.add_argument('-r', '--request', dest='request_file',
		help='YAML or JSON edit request; default keeps the whole file')
	parser.add_argument('-o', '--output', dest='output_file',
		help='output file, default is generated next to the input')
	parser.add_argument('-c', '--config', dest='config_file',
		help='audiocut config YAML')
	parser.add_argument('-f', '--format', dest='output_format',
		choices=config.OUTPUT_FORMATS, help='override output format')
	parser.add_argument('-q', '--quality', dest='quality',
		choices=config.QUALITY_LEVELS, help='override output quality')
	parser.add_argument('-t', '--tolerance', dest='tolerance', type=float,
		help='verification tolerance in seconds')
	parser.add_argument('-n', '--dry-run', dest='dry_run', action='store_true',
		help='validate and plan only, do not render')
	parser.add_argument('-p', '--dump-plan', dest='dump_plan', action='store_true',
		help='print the compiled plan and filter graph as YAML')
	parser.add_argument('-Q', '--quiet', dest='quiet', action='store_true',
		help='suppress progress output')
	parser.set_defaults(dry_run=False, dump_plan=False, quiet=False)
	args = parser.parse_args(argv)
	return args

#============================================

def load_request(request_file: str) -> dict:
	if request_file is None:
		return {}
	with open(request_file, 'r', encoding='utf-8') as handle:
		data = yaml.safe_load(handle)
	if data is None:
		return {}
	if not isinstance(data, dict):
		raise ValidationError('request', "request file must hold a mapping")
	return data

#============================================

def build_request(args) -> dict:
	request = load_request(args.request_file)
	if args.output_format is not None:
		request['outputFormat'] = args.output_format
	if args.quality is not None:
		request['quality'] = args.quality
	return request

#============================================

def build_settings(args) -> dict:
	settings = config.load_settings(args.config_file)
	if args.tolerance is not None:
		if args.tolerance <= 0:
			raise ValidationError('tolerance', "must be positive")
		settings['tolerance'] = args.tolerance
	return settings

#============================================

def print_progress(event) -> None:
	line = f"[{event.stage}] {event.percent:5.1f}%"
	if event.message:
		line += f" {event.message}"
	if event.time_remaining is not None and event.time_remaining > 0:
		line += f" (eta {event.time_remaining:.0f}s)"
	utils.log_message(line)

#============================================

def dump_plan(session: EditSession) -> None:
	graph = session.prepare()
	plan = {
		'plan': session.plan.to_dict(),
		'graph': graph.to_dict(),
		'output': session.output_file,
	}
	print(yaml.safe_dump(plan, sort_keys=False))

#============================================

def run_session(args) -> int:
	settings = build_settings(args)
	request = build_request(args)
	session = EditSession(args.input_file, request, output_file=args.output_file,
		settings=settings)
	if args.dump_plan:
		dump_plan(session)
		return EXIT_OK
	session.prepare()
	if args.dry_run:
		utils.log_message(
			f"dry run: {session.plan.mode} plan, expected output "
			f"{utils.format_seconds(session.graph.output_duration)}s"
		)
		return EXIT_OK
	for tool in ('ffmpeg', 'ffprobe'):
		try:
			utils.check_dependency(tool)
		except RuntimeError as exc:
			raise ProcessingError(str(exc)) from exc
	result = session.run(sink=print_progress)
	report = result.report
	utils.log_message(f"output: {result.output_path}")
	if report is not None:
		utils.log_message(f"verification: {report.summary()}")
		if not report.passed:
			print(f"WARNING: output duration is outside tolerance: {report.summary()}",
				file=sys.stderr)
	return EXIT_OK

#============================================

def main(argv: list = None) -> int:
	args = parse_args(argv)
	utils.set_quiet_mode(args.quiet)
	try:
		return run_session(args)
	except (ValidationError, EmptyResultError) as exc:
		print(f"ERROR: {exc}", file=sys.stderr)
		return EXIT_INVALID
	except (ProcessingError, CancelledError) as exc:
		print(f"ERROR: {exc}", file=sys.stderr)
		return EXIT_PROCESSING
	except RuntimeError as exc:
		# ffprobe failures and unreadable config files
		print(f"ERROR: {exc}", file=sys.stderr)
		return EXIT_PROCESSING


if __name__ == '__main__':
	sys.exit(main())
