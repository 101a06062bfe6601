from flask import Blueprint, request, jsonify

from errors import NotFoundError
from models import db
from models.healer import Healer
from models.service import Service

catalog_bp = Blueprint("catalog", __name__)


def _healer_summary(h: Healer) -> dict:
    return {
        "id": h.id,
        "display_name": h.display_name,
        "bio": h.bio,
    }


def _service_dict(s: Service) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "duration": s.duration,
        "price_paise": s.price_paise,
    }


@catalog_bp.get("/healers")
def list_healers():
    name_query = (request.args.get("q") or "").strip()

    q = Healer.query.filter(Healer.is_active.is_(True))
    if name_query:
        q = q.filter(Healer.display_name.ilike(f"%{name_query}%"))

    rows = q.order_by(Healer.display_name.asc()).limit(200).all()
    return jsonify([_healer_summary(h) for h in rows]), 200


@catalog_bp.get("/healers/<int:healer_id>")
def get_healer(healer_id: int):
    healer = db.session.get(Healer, healer_id)
    if healer is None or not healer.is_active:
        raise NotFoundError("Healer not found", code="HEALER_NOT_FOUND")

    out = _healer_summary(healer)
    out["availability"] = healer.availability or {}
    return jsonify(out), 200


@catalog_bp.get("/services")
def list_services():
    search = (request.args.get("search") or "").strip()
    min_price = request.args.get("min_price", type=int)
    max_price = request.args.get("max_price", type=int)

    q = Service.query.filter(Service.is_active.is_(True))
    if search:
        q = q.filter(Service.name.ilike(f"%{search}%"))
    if min_price is not None:
        q = q.filter(Service.price_paise >= min_price)
    if max_price is not None:
        q = q.filter(Service.price_paise <= max_price)

    rows = q.order_by(Service.price_paise.asc(), Service.id.asc()).limit(200).all()
    return jsonify([_service_dict(s) for s in rows]), 200
