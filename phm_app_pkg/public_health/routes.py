# phm_app_pkg/public_health/routes.py
from flask import Blueprint, request, jsonify, g
from ..utils import permission_required
from .services import (
    count_tab, parse_worklist_request, query_worklist, self_reporting, workflow_counts
)

public_health_bp = Blueprint('public_health_bp', __name__)


@public_health_bp.route('/public_health/patients', methods=['GET', 'POST'])
@permission_required('public_health:read')
def get_patients():
    # The dashboard posts the parameters as JSON; plain GETs use the query string.
    if request.method == 'POST':
        params = request.get_json(silent=True) or {}
    else:
        params = request.args
    worklist_request = parse_worklist_request(params)
    return jsonify(query_worklist(g.current_user, worklist_request)), 200


@public_health_bp.route('/public_health/patients/counts/workflow', methods=['GET'])
@permission_required('public_health:read')
def get_workflow_counts():
    return jsonify(workflow_counts(g.current_user)), 200


@public_health_bp.route('/public_health/patients/counts/<string:workflow>/<string:tab>', methods=['GET'])
@permission_required('public_health:read')
def get_patient_counts(workflow, tab):
    return jsonify(count_tab(g.current_user, workflow, tab)), 200


@public_health_bp.route('/public_health/patients/self_reporting', methods=['GET'])
@permission_required('patient:update')
def get_self_reporting():
    """Self reporters that may become the head of a household."""
    return jsonify({"self_reporting": self_reporting(g.current_user)}), 200
