# phm_app_pkg/advanced_filters/routes.py
from flask import Blueprint, request, jsonify, g
from ..errors import ValidationError
from ..utils import permission_required
from .registry import describe_fields
from .services import (
    create_user_filter, delete_user_filter, list_user_filters, update_user_filter
)

user_filters_bp = Blueprint('user_filters_bp', __name__)


def _filter_contents(data):
    # The dashboard sends its active statements as `activeFilterOptions`.
    if 'activeFilterOptions' in data:
        return data.get('activeFilterOptions')
    return data.get('contents')


@user_filters_bp.route('/advanced_filter/options', methods=['GET'])
@permission_required('public_health:read')
def get_filter_options():
    return jsonify({"options": describe_fields()}), 200


@user_filters_bp.route('/user_filters', methods=['GET'])
@permission_required('user_filter:manage')
def list_filters():
    filters = list_user_filters(g.current_user)
    return jsonify([user_filter.to_dict() for user_filter in filters]), 200


@user_filters_bp.route('/user_filters', methods=['POST'])
@permission_required('user_filter:manage')
def create_filter():
    data = request.get_json(silent=True)
    if not data: return jsonify({"message": "Request body must be JSON."}), 400

    try:
        user_filter = create_user_filter(g.current_user, data.get('name'), _filter_contents(data))
    except ValidationError as e:
        return jsonify({"message": e.message}), 400
    return jsonify({"message": "Filter saved successfully.", "filter": user_filter.to_dict()}), 201


@user_filters_bp.route('/user_filters/<int:filter_id>', methods=['PUT'])
@permission_required('user_filter:manage')
def update_filter(filter_id):
    data = request.get_json(silent=True)
    if not data: return jsonify({"message": "Request body must be JSON."}), 400

    try:
        user_filter = update_user_filter(g.current_user, filter_id, _filter_contents(data), name=data.get('name'))
    except ValidationError as e:
        return jsonify({"message": e.message}), 400
    if user_filter is None:
        return jsonify({"message": "Filter not found."}), 404
    return jsonify({"message": "Filter updated successfully.", "filter": user_filter.to_dict()}), 200


@user_filters_bp.route('/user_filters/<int:filter_id>', methods=['DELETE'])
@permission_required('user_filter:manage')
def delete_filter(filter_id):
    if not delete_user_filter(g.current_user, filter_id):
        return jsonify({"message": "Filter not found."}), 404
    return jsonify({"message": "Filter deleted successfully."}), 200
