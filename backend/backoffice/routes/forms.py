# Overview: Flask API routes for form-backed documents (stock corrections, sales invoices).

"""
Form lifecycle endpoints, one blueprint per document type.

    GET    /                          list (read <type>)
    POST   /                          create request (permissions checked by the service)
    GET    /<id>                      detail (read <type>)
    PATCH  /<id>                      edit request
    DELETE /<id>                      cancellation request, body {"reason"}
    POST   /<id>/approve              approve (requested approver only)
    POST   /<id>/reject               reject, body {"reason"}
    POST   /<id>/cancellation-approve approve cancellation
    POST   /<id>/cancellation-reject  reject cancellation, body {"reason"}

Service errors (FormError) are mapped to JSON by the app-level handler.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import sales_invoice_service, stock_correction_service


def _body() -> dict:
    return request.get_json(silent=True) or {}


def make_form_blueprint(name: str, url_prefix: str, service, module: str) -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=url_prefix)

    @bp.get("")
    @require_auth
    @require_permission(f"read {module}")
    def list_route():
        return jsonify(service.find_all(request.args.to_dict())), 200

    @bp.post("")
    @require_auth
    def create_route():
        document = service.create_form_request(g.current_user, _body())
        return jsonify(service.find_one(document.id)), 201

    @bp.get("/<int:document_id>")
    @require_auth
    @require_permission(f"read {module}")
    def detail_route(document_id: int):
        return jsonify(service.find_one(document_id)), 200

    @bp.patch("/<int:document_id>")
    @require_auth
    def update_route(document_id: int):
        document = service.update_form(document_id, g.current_user, _body())
        return jsonify(service.find_one(document.id)), 200

    @bp.delete("/<int:document_id>")
    @require_auth
    def request_cancellation_route(document_id: int):
        document = service.request_cancellation(document_id, g.current_user, _body().get("reason"))
        return jsonify(service.find_one(document.id)), 200

    @bp.post("/<int:document_id>/approve")
    @require_auth
    def approve_route(document_id: int):
        document = service.approve_form_request(document_id, g.current_user)
        return jsonify(service.find_one(document.id)), 200

    @bp.post("/<int:document_id>/reject")
    @require_auth
    def reject_route(document_id: int):
        document = service.reject_form_request(document_id, g.current_user, _body().get("reason"))
        return jsonify(service.find_one(document.id)), 200

    @bp.post("/<int:document_id>/cancellation-approve")
    @require_auth
    def approve_cancellation_route(document_id: int):
        document = service.approve_cancellation(document_id, g.current_user, _body().get("reason"))
        return jsonify(service.find_one(document.id)), 200

    @bp.post("/<int:document_id>/cancellation-reject")
    @require_auth
    def reject_cancellation_route(document_id: int):
        document = service.reject_cancellation(document_id, g.current_user, _body().get("reason"))
        return jsonify(service.find_one(document.id)), 200

    return bp


stock_corrections_bp = make_form_blueprint(
    "stock_corrections", "/api/stock-corrections", stock_correction_service, "stock correction"
)
sales_invoices_bp = make_form_blueprint(
    "sales_invoices", "/api/sales-invoices", sales_invoice_service, "sales invoice"
)
