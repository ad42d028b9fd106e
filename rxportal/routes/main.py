"""
Main Routes

FLOW OVERVIEW
- / [GET]
  • Service banner.
- /health [GET]
  • JSON health check including a database ping.
- /api/metrics [GET]
  • Prometheus text exposition.
- Request hooks
  • Every request's endpoint, status and latency are recorded for Prometheus.
"""

import time
from datetime import datetime

from flask import Blueprint, Response, current_app, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..models import db
from ..utils.prom_metrics import metrics_latest, observe_request, CONTENT_TYPE_LATEST

main_bp = Blueprint('main', __name__)


@main_bp.before_app_request
def start_timer():
    g.request_started = time.perf_counter()


@main_bp.after_app_request
def record_request(response):
    started = g.pop('request_started', None)
    if started is not None:
        observe_request(request.endpoint or 'unknown', response.status_code, time.perf_counter() - started)
    return response


@main_bp.route('/')
def home():
    return jsonify({'name': current_app.config.get('COMPANY_NAME', '9RX LLC'), 'service': 'rxportal'})


@main_bp.route('/health')
def health():
    """Health check endpoint"""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except SQLAlchemyError as e:
        current_app.logger.error(f"Health check database ping failed: {e}")
        database = 'unavailable'
    status = 'healthy' if database == 'ok' else 'degraded'
    return jsonify({'status': status, 'database': database,
                    'timestamp': datetime.utcnow().isoformat()}), 200 if database == 'ok' else 503


@main_bp.route('/api/metrics')
def metrics():
    """Prometheus metrics endpoint."""
    output = metrics_latest()
    return Response(output, mimetype=CONTENT_TYPE_LATEST)
