# Overview: Flask API routes for master data (branches, categories, units, suppliers, ...).

# backend/backoffice/routes/master_data.py
"""
One set of CRUD routes for every simple master-data entity:

    GET    /api/<entity>                 ?search=&include_deleted=1
    POST   /api/<entity>
    GET    /api/<entity>/<id>
    PUT    /api/<entity>/<id>
    DELETE /api/<entity>/<id>            soft delete
    POST   /api/<entity>/<id>/restore

<entity> is a key of master_data_service.ENTITIES; unknown names are 404.
"""
from flask import Blueprint, request

from ..services import master_data_service
from ..validation import validate_payload
from .common import DOMAIN_ERRORS, error_response, internal_error

master_data_bp = Blueprint("master_data", __name__, url_prefix="/api")


@master_data_bp.get("/<entity>")
def list_entities(entity: str):
    search = request.args.get("search")
    include_deleted = request.args.get("include_deleted") in ("1", "true")
    try:
        rows = master_data_service.list_entities(entity, search=search, include_deleted=include_deleted)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}


@master_data_bp.post("/<entity>")
def create_entity(entity: str):
    payload = request.get_json(silent=True) or {}
    try:
        definition = master_data_service.get_definition(entity)
        patch = validate_payload(model=definition.model, payload=payload, policy=definition.policy, partial=False)
        created = master_data_service.create_entity(entity, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"create {entity}")
    return created.to_dict(), 201


@master_data_bp.get("/<entity>/<int:entity_id>")
def get_entity(entity: str, entity_id: int):
    try:
        obj = master_data_service.get_entity(entity, entity_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return obj.to_dict()


@master_data_bp.put("/<entity>/<int:entity_id>")
def update_entity(entity: str, entity_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        definition = master_data_service.get_definition(entity)
        patch = validate_payload(model=definition.model, payload=payload, policy=definition.policy, partial=True)
        updated = master_data_service.update_entity(entity, entity_id, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update {entity} {entity_id}")
    return updated.to_dict()


@master_data_bp.delete("/<entity>/<int:entity_id>")
def delete_entity(entity: str, entity_id: int):
    try:
        deleted = master_data_service.delete_entity(entity, entity_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete {entity} {entity_id}")
    return deleted.to_dict()


@master_data_bp.post("/<entity>/<int:entity_id>/restore")
def restore_entity(entity: str, entity_id: int):
    try:
        restored = master_data_service.restore_entity(entity, entity_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore {entity} {entity_id}")
    return restored.to_dict()
