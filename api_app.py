"""
api_app.py — Flask HTTP API for the Money Muling Detection Engine.

Run with:  python api_app.py
Call:      POST http://localhost:5000/api/analyze  {"csv": "<csv text>"}

Analyses run on a pool of ANALYSIS_WORKERS threads and each request waits
at most ANALYSIS_TIMEOUT_SECONDS for its result. A run that times out is not
cancelled: it keeps its worker until it finishes. With every worker held
this way, new requests queue, and the queue wait counts against their own
timeout. Size ANALYSIS_WORKERS above the expected number of concurrent
oversized uploads.
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as AnalysisTimeout

from flask import Flask, jsonify, request
from loguru import logger

from utils.validation import read_csv_text, MAX_CSV_SIZE_BYTES
from detection.pipeline import run_analysis

ANALYSIS_TIMEOUT_SECONDS = float(os.environ.get("ANALYSIS_TIMEOUT_SECONDS", "30"))
MAX_ERROR_DETAILS = 20

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_CSV_SIZE_BYTES
# Keep the contract's field order in responses
app.json.sort_keys = False

# Timed-out runs keep their worker until done (see module docstring)
_executor = ThreadPoolExecutor(max_workers=int(os.environ.get("ANALYSIS_WORKERS", "4")))


def _error_response(message: str, status: int, details=None):
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return jsonify(body), status


def _validation_message(errors) -> str:
    messages = [e["message"] for e in errors[:MAX_ERROR_DETAILS]]
    if any("too large" in m for m in messages):
        return "CSV file too large."
    if any("Missing required column" in m for m in messages):
        return "CSV is missing required columns."
    if any("timestamp" in m for m in messages):
        return "CSV contains invalid timestamps."
    return "CSV validation failed."


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@app.route("/api/analyze", methods=["POST"])
def analyze():
    started_at = time.perf_counter()

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _error_response("Invalid JSON in request body.", 400)

    csv_text = body.get("csv")
    if not isinstance(csv_text, str) or not csv_text:
        return _error_response("Missing or invalid 'csv' field in request body.", 400)
    if not csv_text.strip():
        return _error_response("CSV content is empty.", 400)

    is_valid, errors, cleaned_df = read_csv_text(csv_text)
    if not is_valid:
        logger.info(f"Rejected CSV upload with {len(errors)} validation error(s)")
        return _error_response(_validation_message(errors), 400, errors[:MAX_ERROR_DETAILS])

    future = _executor.submit(run_analysis, cleaned_df, started_at)
    try:
        results = future.result(timeout=ANALYSIS_TIMEOUT_SECONDS)
    except AnalysisTimeout:
        logger.warning(f"Analysis exceeded {ANALYSIS_TIMEOUT_SECONDS}s budget")
        return _error_response(
            f"Analysis timed out after {ANALYSIS_TIMEOUT_SECONDS:g} seconds.", 504
        )
    except Exception as exc:
        logger.exception("Analysis failed")
        return _error_response(f"Analysis failed: {exc}", 500)

    return jsonify(results["report"]), 200


@app.errorhandler(413)
def payload_too_large(_error):
    limit_mb = MAX_CSV_SIZE_BYTES // (1024 * 1024)
    return _error_response(f"Request body too large. Maximum allowed: {limit_mb} MB.", 413)


if __name__ == "__main__":
    app.run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "5000")),
        debug=os.environ.get("FLASK_DEBUG", "0") == "1",
    )
