"""Analytics blueprint: admin dashboard widgets and revenue report."""
from flask import Blueprint, current_app, jsonify, request

from wellness.blueprints.metrics import record_widget_result
from wellness.exceptions import WellnessError
from wellness.middleware import get_api_client, require_token
from wellness.services import analytics_service
from wellness.services.dashboard_service import DashboardLoader
from wellness.services.plan_catalog import PlanCatalog

analytics_bp = Blueprint('analytics', __name__, url_prefix='/analytics')


def _commission_rates():
    catalog = PlanCatalog.from_config(
        current_app.config, get_api_client(), cache=current_app.extensions.get('cache')
    )
    return catalog.commission_rates()


@analytics_bp.route('/dashboard')
@require_token
def dashboard():
    """
    Load dashboard widgets concurrently.

    Query params:
        widgets: Optional comma-separated subset, e.g. ``userStats,subscriptions``

    Failed widgets carry fallback data and are listed under ``errors``.
    """
    only = request.args.get('widgets')
    only = [name.strip() for name in only.split(',') if name.strip()] if only else None

    loader = DashboardLoader(
        get_api_client(),
        rates=_commission_rates(),
        max_workers=current_app.config.get('DASHBOARD_MAX_WORKERS', 6),
    )
    snapshot = loader.load(on_widget=record_widget_result, only=only)
    return jsonify({
        'success': True,
        **snapshot.to_json(),
        'pollInterval': current_app.config.get('NOTIFICATION_POLL_INTERVAL', 30),
    })


@analytics_bp.route('/revenue')
@require_token
def revenue():
    """Revenue report computed from raw subscription and consultation records."""
    api = get_api_client()
    sources = {}
    errors = {}
    for name, resource in (('subscriptions', 'subscriptions'), ('consultations', 'consultation-revenue')):
        try:
            sources[name] = api.get_records(resource)
        except WellnessError as e:
            current_app.logger.warning(f"[ANALYTICS] {resource} unavailable: {e.message}")
            sources[name] = None
            errors[name] = e.message

    report = analytics_service.aggregate(
        sources['subscriptions'],
        sources['consultations'],
        _commission_rates(),
    )
    return jsonify({'success': True, 'data': report, 'errors': errors})
