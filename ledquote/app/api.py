from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from .catalog import Catalog
from .config import EngineSettings
from .database import session_scope
from .discounts import DiscountDirective
from .errors import ConflictError, GenerationError, NotFoundError, QuoteEngineError, ValidationError
from .quotation_ids import QuotationIdGenerator
from .services import QuotationRequest, QuotationService


api = Blueprint("api", __name__, url_prefix="/api")

USER_HEADER = "X-Sales-User-Id"


def _error(exc: QuoteEngineError, status: int):
    payload: Dict[str, Any] = {"error": str(exc), "field": getattr(exc, "field", None)}
    if exc.retryable:
        payload["retryable"] = True
    if isinstance(exc, ConflictError) and exc.quotation_id:
        payload["quotationId"] = exc.quotation_id
    return jsonify(payload), status


@api.errorhandler(ValidationError)
def _validation_error(exc: ValidationError):
    return _error(exc, 400)


@api.errorhandler(NotFoundError)
def _not_found(exc: NotFoundError):
    return _error(exc, 404)


@api.errorhandler(ConflictError)
def _conflict(exc: ConflictError):
    return _error(exc, 409)


@api.errorhandler(GenerationError)
def _generation_failed(exc: GenerationError):
    return _error(exc, 503)


def _service(session) -> QuotationService:
    ext = current_app.extensions
    catalog: Catalog = ext["ledquote.catalog"]
    generator: QuotationIdGenerator = ext["ledquote.generator"]
    settings: EngineSettings = ext["ledquote.settings"]
    return QuotationService(session, catalog, generator, settings)


def _current_user_id() -> str:
    user_id = request.headers.get(USER_HEADER)
    if not user_id:
        raise ValidationError(f"missing {USER_HEADER} header", "salesUserId")
    return user_id


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date", name) from None


@api.post("/quotation-ids")
def create_quotation_id():
    payload = request.get_json(silent=True) or {}
    with session_scope() as session:
        service = _service(session)
        user = service.get_user(_current_user_id())
        name = payload.get("name") or user.name
        quotation_id = service.generate_quotation_id(name)
    return jsonify({"quotationId": quotation_id}), 201


@api.post("/quotations")
def create_quotation():
    payload = request.get_json(silent=True) or {}
    quotation_request = QuotationRequest.from_payload(payload)
    with session_scope() as session:
        quote = _service(session).save_quotation(_current_user_id(), quotation_request)
        body = quote.to_dict()
    return jsonify(body), 201


@api.get("/quotations/<path:quotation_id>")
def quotation_detail(quotation_id: str):
    with session_scope() as session:
        body = _service(session).get_quotation(quotation_id).to_dict()
    return jsonify(body)


@api.post("/quotations/<path:quotation_id>/discount")
def discount_quotation(quotation_id: str):
    payload = request.get_json(silent=True) or {}
    scopes = payload.get("scopes", payload.get("scope"))
    if scopes is None:
        raise ValidationError("a discount scope is required", "scope")
    directive = DiscountDirective.from_scopes(scopes, payload.get("percent", 0))
    with session_scope() as session:
        body = _service(session).apply_discount(_current_user_id(), quotation_id, directive).to_dict()
    return jsonify(body)


@api.delete("/quotations/<path:quotation_id>")
def delete_quotation(quotation_id: str):
    with session_scope() as session:
        _service(session).delete_quotation(_current_user_id(), quotation_id)
    return jsonify({"deleted": quotation_id})


@api.get("/reports/sales-users")
def sales_user_report():
    start = _parse_date(request.args.get("start"), "start")
    end = _parse_date(request.args.get("end"), "end")
    with session_scope() as session:
        rows = _service(session).report(_current_user_id(), start, end)
        body = [row.to_dict() for row in rows]
    return jsonify({"salesUsers": body})


def register_api(app: Flask) -> None:
    app.register_blueprint(api)
