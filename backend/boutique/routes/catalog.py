# Overview: Flask API routes for articles, variants and barcodes.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import catalog_service
from ..errors import service_error_response

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/articles")
@require_operator
def list_articles():
    """
    Query params: search, category, stock (All|Available|Low|Empty), threshold.
    """
    try:
        articles = catalog_service.list_articles(
            search=request.args.get("search"),
            category=request.args.get("category"),
            stock_filter=request.args.get("stock", "All"),
            threshold=request.args.get("threshold", type=int),
        )
    except Exception as e:
        return service_error_response(e)
    return jsonify({"items": [a.to_dict() for a in articles]}), 200


@catalog_bp.post("/articles")
@require_operator
@require_role(OperatorRole.WAREHOUSE)
def create_article():
    """
    Request body: article fields plus
        "variants": [{"size_label", "size_internal", "store_qty", "warehouse_qty", "price_cents", "barcode"}]

    Returns:
        201: Article created (initial stock logged as Inward movements)
        400: Invalid payload
        409: Duplicate id or barcode
    """
    try:
        article = catalog_service.create_article(request.get_json(silent=True) or {}, actor=g.operator)
        return jsonify(article.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@catalog_bp.get("/articles/<article_id>")
@require_operator
def get_article(article_id: str):
    article = catalog_service.get_article(article_id)
    if article is None:
        return jsonify({"error": f"Article {article_id} not found"}), 404
    return jsonify(article.to_dict()), 200


@catalog_bp.patch("/articles/<article_id>")
@require_operator
@require_role(OperatorRole.ADMIN)
def update_article(article_id: str):
    try:
        article = catalog_service.update_article(article_id, request.get_json(silent=True) or {}, actor=g.operator)
        return jsonify(article.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@catalog_bp.delete("/articles/<article_id>")
@require_operator
@require_role(OperatorRole.ADMIN)
def delete_article(article_id: str):
    """Movements referencing the article are kept."""
    try:
        catalog_service.delete_article(article_id, actor=g.operator)
        return jsonify({"deleted": article_id}), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@catalog_bp.post("/articles/<article_id>/variants")
@require_operator
@require_role(OperatorRole.WAREHOUSE)
def add_variant(article_id: str):
    try:
        variant = catalog_service.add_variant(article_id, request.get_json(silent=True) or {}, actor=g.operator)
        return jsonify(variant.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@catalog_bp.put("/articles/<article_id>/variants/<size_internal>/barcode")
@require_operator
@require_role(OperatorRole.WAREHOUSE)
def set_barcode(article_id: str, size_internal: str):
    """Request body: {"barcode": str | null}; null reverts to the canonical code."""
    data = request.get_json(silent=True) or {}
    try:
        variant = catalog_service.set_variant_barcode(
            article_id, size_internal, data.get("barcode"), actor=g.operator
        )
        return jsonify(variant.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@catalog_bp.get("/resolve")
@require_operator
def resolve_code():
    code = request.args.get("code", "")
    variant = catalog_service.resolve_code(code)
    if variant is None:
        return jsonify({"error": "Article ID not recognized", "code": code.strip()}), 404
    data = variant.to_dict()
    data["article"] = variant.article.to_dict(include_variants=False)
    return jsonify(data), 200


@catalog_bp.get("/barcodes")
@require_operator
def barcode_directory():
    return jsonify({"items": catalog_service.barcode_directory(request.args.get("search"))}), 200
