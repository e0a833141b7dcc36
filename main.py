#!/usr/bin/env python3
"""H1B Jobs Ingestion Pipeline: scrape job boards, classify sponsorship, persist listings."""

import http.server
import json
import logging
import os
import socketserver
import sys
import threading
from dataclasses import asdict
from datetime import datetime

import config
from archive import save_run_report
from models import OrchestrationResult
from orchestrator import ScrapingOrchestrator
from store import JobStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def open_store() -> JobStore:
    """Open the configured store and add any configured sources it lacks."""
    store = JobStore(config.DB_PATH)
    store.sync_sources(config.SOURCES)
    return store


def run_pipeline(
    force_run: bool = False,
    source_ids: list[str] | None = None,
    store: JobStore | None = None,
    cancel: threading.Event | None = None,
) -> OrchestrationResult:
    """Execute one scraping pass and archive its report."""
    store = store or open_store()

    logger.info("=== Scraping pass ===")
    result = ScrapingOrchestrator(store).run_pass(
        force_run=force_run,
        source_ids=source_ids,
        cancel=cancel,
        time_budget_sec=config.PASS_TIME_BUDGET_SEC,
    )

    runs = store.list_runs(limit=result.runs_executed) if result.runs_executed else []
    report = save_run_report(result, runs)
    logger.info(f"Report saved to {report}")
    logger.info("=== Pass complete ===")

    print(f"\n{'='*50}")
    print("Scraping Pass Summary")
    print(f"{'='*50}")
    print(f"Runs executed: {result.runs_executed}")
    print(f"Sources processed: {', '.join(result.sources_processed) or 'none'}")
    print(f"Jobs scraped: {result.total_jobs_scraped}")
    print(f"Jobs saved: {result.total_jobs_processed}")
    print(f"Errors: {len(result.errors)}")
    print(f"Report: {report}")
    print(f"{'='*50}")

    return result


def list_sources(store: JobStore | None = None) -> None:
    store = store or open_store()
    for source in store.list_sources():
        state = "active" if source.is_active else "inactive"
        last = source.last_scraped_at.isoformat() if source.last_scraped_at else "never"
        print(f"{source.id:<20} {source.source_type:<14} {state:<9} every {source.scraping_frequency_hours}h, last: {last}")


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(data) -> bytes:
    return json.dumps(data, default=_json_default).encode()


def _parse_run_args(args: list[str]) -> tuple[bool, list[str]]:
    """Split `run` arguments into (force, source ids)."""
    force = "--force" in args
    source_ids = [a for a in args if not a.startswith("--")]
    return force, source_ids


def build_handler(store: JobStore, runner=run_pipeline, reports_dir: str | None = None):
    """Create the request handler class bound to a store and a pass runner."""
    reports_dir = reports_dir or config.REPORTS_DIR
    os.makedirs(reports_dir, exist_ok=True)
    run_lock = threading.Lock()

    class ApiHandler(http.server.SimpleHTTPRequestHandler):
        protocol_version = "HTTP/1.1"
        _MAX_BODY = 64 * 1024  # 64 KB for JSON endpoints

        def __init__(self, *args, **kwargs):
            super().__init__(*args, directory=reports_dir, **kwargs)

        def end_headers(self):
            self.send_header("Cache-Control", "no-store")
            super().end_headers()

        def _send_json(self, status: int, data):
            body = to_json(data)
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _check_origin(self):
            """Reject requests from non-localhost origins (CSRF protection)."""
            origin = self.headers.get("Origin", "")
            if origin and not origin.startswith(("http://localhost:", "http://127.0.0.1:")):
                self._send_json(403, {"error": "Forbidden: non-localhost origin"})
                return False
            return True

        def _read_json(self):
            """Read the JSON body. Returns (data, error); an empty body reads as {}."""
            length = int(self.headers.get("Content-Length", 0))
            if length > self._MAX_BODY:
                return None, (413, "Request body too large")
            if not length:
                return {}, None
            try:
                return json.loads(self.rfile.read(length)), None
            except json.JSONDecodeError:
                return None, (400, "Invalid JSON")

        def do_GET(self):
            if self.path == "/api/runs":
                self._send_json(200, [asdict(r) for r in store.list_runs()])
            elif self.path == "/api/sources":
                self._send_json(200, [asdict(s) for s in store.list_sources()])
            else:
                super().do_GET()

        def do_POST(self):
            if not self._check_origin():
                return
            if self.path == "/api/run":
                self._handle_run()
            else:
                self._send_json(404, {"error": "Not found"})

        def do_PUT(self):
            if not self._check_origin():
                return
            if self.path.startswith("/api/sources/"):
                self._handle_toggle_source(self.path[len("/api/sources/"):])
            else:
                self._send_json(404, {"error": "Not found"})

        def _handle_run(self):
            data, error = self._read_json()
            if error:
                self._send_json(error[0], {"error": error[1]})
                return
            if not isinstance(data, dict):
                self._send_json(400, {"error": "Expected a JSON object"})
                return
            source_ids = data.get("source_ids") or None
            if source_ids is not None and (
                not isinstance(source_ids, list) or not all(isinstance(s, str) for s in source_ids)
            ):
                self._send_json(400, {"error": "source_ids must be a list of strings"})
                return

            if not run_lock.acquire(blocking=False):
                self._send_json(409, {"error": "Scraping pass already in progress"})
                return

            try:
                result = runner(force_run=bool(data.get("force")), source_ids=source_ids, store=store)
                self._send_json(200, result.to_dict())
            except Exception as e:
                logger.error(f"Scraping pass failed: {e}", exc_info=True)
                self._send_json(500, {"error": "Scraping pass failed"})
            finally:
                run_lock.release()

        def _handle_toggle_source(self, source_id: str):
            data, error = self._read_json()
            if error:
                self._send_json(error[0], {"error": error[1]})
                return
            if not isinstance(data, dict) or not isinstance(data.get("is_active"), bool):
                self._send_json(400, {"error": "Body must be {\"is_active\": true|false}"})
                return
            if not store.set_source_active(source_id, data["is_active"]):
                self._send_json(404, {"error": f"Unknown source: {source_id}"})
                return
            logger.info(f"Source {source_id} set {'active' if data['is_active'] else 'inactive'}")
            self._send_json(200, asdict(store.get_source(source_id)))

        def log_message(self, format, *args):
            # Only log API calls
            if "/api/" in str(args):
                super().log_message(format, *args)

    return ApiHandler


class ThreadedHTTPServer(socketserver.ThreadingMixIn, http.server.HTTPServer):
    daemon_threads = True


def serve(port: int = 8080):
    """Serve the run API and the reports directory over HTTP."""
    store = open_store()
    bind_addr = os.environ.get("BIND_ADDR", "localhost")
    with ThreadedHTTPServer((bind_addr, port), build_handler(store)) as server:
        print(f"Serving API at http://localhost:{port}")
        print("Press Ctrl+C to stop")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            print("\nStopped.")


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    command = args[0] if args else "run"

    if command == "serve":
        port = int(args[1]) if len(args) > 1 else 8080
        serve(port)
        return 0
    if command == "sources":
        list_sources()
        return 0
    if command != "run":
        print(f"Unknown command: {command}. Use run [--force] [SOURCE_ID ...], serve [PORT] or sources.")
        return 2

    force, source_ids = _parse_run_args(args[1:])
    try:
        result = run_pipeline(force_run=force, source_ids=source_ids or None)
    except KeyboardInterrupt:
        logger.info("Pass interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Pass failed: {e}", exc_info=True)
        return 1
    if result.errors:
        logger.warning(f"Pass finished with {len(result.errors)} errors")
    return 0


if __name__ == "__main__":
    sys.exit(main())
