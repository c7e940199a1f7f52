from flask import Blueprint, current_app, jsonify, request

from scoopify.extensions import limiter
from scoopify.services.coverage import CoverageResolver
from scoopify.utils.validators import json_body, validate_zip_code

coverage_bp = Blueprint('coverage', __name__)


@coverage_bp.route('/check', methods=['POST'])
@limiter.limit('30 per minute')
def check_coverage():
    """
    Is a ZIP code served?
    POST /api/coverage/check
    Body: {"zip_code": "80903"}
    """
    data = json_body(request)
    zip_code = validate_zip_code(str(data.get('zip_code', '')).strip())

    result = CoverageResolver.from_config(current_app.config).check_coverage(zip_code)
    return jsonify(result.to_dict()), 200
