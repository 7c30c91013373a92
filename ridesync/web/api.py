"""Local HTTP surface for the UI layer: user intents in, read-only projections out."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ridesync.domain.auth_state import AuthStage
from ridesync.domain.ride_accumulator import RideSample
from ridesync.errors import ValidationError
from ridesync.models.sync_status import RecordKind
from ridesync.services.container import get_container
from ridesync.tasks.sync_tasks import queue_device_poll

log = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


def _service(name):
    return get_container().get(name)


def _payload():
    return request.get_json(silent=True) or {}


def _limit(default=50, maximum=500):
    try:
        return max(1, min(int(request.args.get('limit', default)), maximum))
    except ValueError:
        raise ValidationError("limit must be an integer")


@api_bp.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'version': current_app.config.get('VERSION')})


# Authentication

@api_bp.route('/auth/status', methods=['GET'])
def auth_status():
    status = _service('auth_service').status().to_dict()
    status['device_auth'] = _service('device_auth_service').state.to_dict()
    return jsonify(status)


@api_bp.route('/auth/device/start', methods=['POST'])
def start_device_login():
    """Request a user code and start polling for approval in the background."""
    device_auth = _service('device_auth_service')
    state = device_auth.start()
    if state.stage is AuthStage.WAITING_FOR_USER:
        queue_device_poll(get_container())
    return jsonify(state.to_dict())


@api_bp.route('/auth/device/state', methods=['GET'])
def device_login_state():
    return jsonify(_service('device_auth_service').state.to_dict())


@api_bp.route('/auth/device/cancel', methods=['POST'])
def cancel_device_login():
    device_auth = _service('device_auth_service')
    device_auth.cancel()
    return jsonify(device_auth.state.to_dict())


@api_bp.route('/auth/logout', methods=['POST'])
def logout():
    _service('device_auth_service').reset()
    _service('auth_service').logout()
    return jsonify({'success': True})


# Sync

@api_bp.route('/sync/state', methods=['GET'])
def sync_state():
    return jsonify(_service('sync_service').refresh_state().to_dict())


@api_bp.route('/sync', methods=['POST'])
def trigger_sync():
    """Run a sync pass now. Answers 409 when a pass is already running."""
    sync_service = _service('sync_service')
    summary = sync_service.sync_all()
    body = {
        'success': not summary.rejected and not summary.aborted,
        'summary': summary.to_dict(),
        'state': sync_service.state.to_dict(),
    }
    return jsonify(body), (409 if summary.rejected else 200)


@api_bp.route('/sync/retry-failed', methods=['POST'])
def retry_failed():
    count = _service('sync_service').retry_failed()
    return jsonify({'success': True, 'requeued': count})


@api_bp.route('/sync/device-revoked/acknowledge', methods=['POST'])
def acknowledge_device_revoked():
    return jsonify(_service('sync_service').clear_device_revoked_flag().to_dict())


@api_bp.route('/preferences/auto-sync', methods=['GET', 'PUT'])
def auto_sync_preference():
    preferences = _service('preference_repository')
    if request.method == 'PUT':
        enabled = _payload().get('enabled')
        if not isinstance(enabled, bool):
            raise ValidationError("enabled must be a boolean")
        preferences.set_auto_sync_enabled(enabled)
    default = current_app.config.get('AUTO_SYNC_ENABLED', True)
    return jsonify({'enabled': preferences.is_auto_sync_enabled(default)})


@api_bp.route('/preferences/settings', methods=['GET', 'PUT'])
def dashboard_settings():
    """Settings shared with the web dashboard. PUT stores locally, then uploads."""
    preferences = _service('preference_repository')
    if request.method == 'GET':
        return jsonify({'settings': preferences.get_cloud_settings()})

    data = _payload()
    try:
        preferences.apply_cloud_settings(data)
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid settings", details=str(e))
    uploaded = _service('sync_service').upload_settings()
    return jsonify({'settings': preferences.get_cloud_settings(), 'uploaded': uploaded})


@api_bp.route('/preferences/settings/pull', methods=['POST'])
def pull_dashboard_settings():
    fetched = _service('sync_service').fetch_settings()
    return jsonify({
        'fetched': fetched,
        'settings': _service('preference_repository').get_cloud_settings(),
    })


# Rides

@api_bp.route('/rides/start', methods=['POST'])
def start_ride():
    resumed = _service('recording_service').start_ride()
    return jsonify({'success': True, 'resumed': resumed}), 201


@api_bp.route('/rides/current', methods=['GET'])
def current_ride():
    return jsonify(_service('recording_service').status())


@api_bp.route('/rides/samples', methods=['POST'])
def add_samples():
    """Sensor pipeline callback; accepts one sample or {"samples": [...]}."""
    payload = _payload()
    raw_samples = payload.get('samples', [payload]) if isinstance(payload, dict) else payload
    recording_service = _service('recording_service')
    accepted = 0
    for raw in raw_samples:
        try:
            sample = RideSample.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError("Invalid sample", details=str(e))
        if recording_service.on_sample(sample):
            accepted += 1
    return jsonify({'accepted': accepted})


@api_bp.route('/rides/pause', methods=['POST'])
def pause_ride():
    recording_service = _service('recording_service')
    recording_service.pause_ride()
    return jsonify(recording_service.status())


@api_bp.route('/rides/resume', methods=['POST'])
def resume_ride():
    recording_service = _service('recording_service')
    recording_service.resume_ride()
    return jsonify(recording_service.status())


@api_bp.route('/rides/finish', methods=['POST'])
def finish_ride():
    saved_manually = bool(_payload().get('saved_manually', False))
    ride = _service('recording_service').finish_ride(saved_manually=saved_manually)
    if ride is None:
        return jsonify({'success': True, 'ride': None})
    return jsonify({'success': True, 'ride': ride.to_dict()}), 201


@api_bp.route('/rides/discard', methods=['POST'])
def discard_ride():
    _service('recording_service').discard_ride()
    return jsonify({'success': True})


@api_bp.route('/rides', methods=['GET'])
def list_rides():
    rides = _service('record_repository').list_rides(limit=_limit())
    return jsonify([ride.to_dict() for ride in rides])


@api_bp.route('/rides/<int:ride_id>', methods=['GET'])
def get_ride(ride_id):
    ride = _service('record_repository').get_or_404(RecordKind.RIDE, ride_id)
    return jsonify(ride.to_dict(include_snapshots=True))


@api_bp.route('/rides/<int:ride_id>/rating', methods=['POST'])
def rate_ride(ride_id):
    ride = _service('recording_service').rate_ride(ride_id, _payload().get('rating'))
    return jsonify(ride.to_dict())


# Drills and achievements

@api_bp.route('/drills', methods=['GET', 'POST'])
def drills():
    if request.method == 'GET':
        results = _service('record_repository').list_drill_results(limit=_limit())
        return jsonify([result.to_dict() for result in results])

    data = _payload()
    try:
        result = _service('recording_service').record_drill_result(
            drill_id=data.get('drill_id'),
            drill_name=data.get('drill_name'),
            duration_ms=data.get('duration_ms', 0),
            score=data.get('score', 0),
            time_in_target_ms=data.get('time_in_target_ms', 0),
            completed=data.get('completed', False),
            phase_scores=data.get('phase_scores'),
            timestamp=data.get('timestamp'),
        )
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid drill result", details=str(e))
    return jsonify(result.to_dict()), 201


@api_bp.route('/achievements', methods=['GET', 'POST'])
def achievements():
    if request.method == 'GET':
        return jsonify([a.to_dict() for a in _service('record_repository').list_achievements()])

    data = _payload()
    achievement, created = _service('recording_service').unlock_achievement(
        data.get('achievement_id'),
        unlocked_at=data.get('unlocked_at'),
        progress=data.get('progress', 100),
    )
    return jsonify(achievement.to_dict()), (201 if created else 200)
