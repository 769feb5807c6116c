"""
HTTP trigger for library scans.
Exposes the same scan operation the scheduler runs.
"""

import logging
from typing import Optional

from flask import Flask, jsonify

from shared.exceptions import IngestError, ScanInProgress
from .scanner import ScanOrchestrator

logger = logging.getLogger(__name__)


def create_app(orchestrator: ScanOrchestrator) -> Flask:
    """
    Build the Flask app around an orchestrator.

    POST /api/songs/scan answers 200 with the scan result even when some
    objects failed; only a fatal failure (the bucket could not be listed)
    answers 500.
    """
    app = Flask(__name__)
    app.config['ORCHESTRATOR'] = orchestrator

    @app.route('/api/health')
    def health_check():
        return jsonify({"status": "healthy"})

    @app.route('/api/songs/scan', methods=['POST'])
    def scan_songs():
        try:
            result = orchestrator.run_scan()
        except ScanInProgress as e:
            return jsonify({"error": "Scan already in progress", "details": e.message}), 409
        except IngestError as e:
            logger.error(f"Scan error: {e.message}")
            return jsonify({"error": "Scan failed", "details": e.message}), 500

        return jsonify({"message": "Scan complete", **result.to_dict()})

    @app.route('/api/songs/scan/status', methods=['GET'])
    def scan_status():
        last: Optional[dict] = orchestrator.last_result.to_dict() if orchestrator.last_result else None
        return jsonify({
            "state": orchestrator.state.value,
            "running": orchestrator.is_running,
            "lastResult": last,
        })

    return app
