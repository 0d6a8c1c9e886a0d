"""
Agri Ledger REST API Server

Flask REST API for:
- Record registration and lookup
- Authenticity verification
- Ownership transfer and access revocation
- Metadata amendment, modification and purge
- Emergency restriction

The calling identity is read from the X-Actor-Identity header, which the
fronting gateway authenticates. Every route except /api/health needs it.

Run:
    flask --app api.server run --port 8080

Or with gunicorn (production):
    gunicorn -w 4 -b 0.0.0.0:8080 api.server:app
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from agri_ledger import __schema__, __version__
from agri_ledger.errors import AUTHORIZATION_CODES, VALIDATION_CODES, ErrorCode
from agri_ledger.models import OperationResult
from agri_ledger.service import ProvenanceLedger, open_ledger
from agri_ledger.settings import Settings, configure_logging

logger = logging.getLogger(__name__)

IDENTITY_HEADER = "X-Actor-Identity"

STATUS_BY_CODE = {
    **{code: 403 for code in AUTHORIZATION_CODES},
    **{code: 422 for code in VALIDATION_CODES},
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_RESOURCE: 409,
}

bp = Blueprint("records", __name__)


def get_ledger() -> ProvenanceLedger:
    ledger = current_app.config.get("LEDGER")
    if ledger is None:
        settings = Settings.load()
        logger.info(f"Opening ledger state in {settings.STATE_DIR}")
        ledger = open_ledger(settings)
        current_app.config["LEDGER"] = ledger
    return ledger


def caller_identity() -> Optional[str]:
    who = request.headers.get(IDENTITY_HEADER, "").strip()
    return who or None


def error_body(code: int, name: str, message: str):
    return jsonify({"error": {"code": code, "name": name, "message": message}})


def respond(result: OperationResult, key: str, status: int = 200):
    if result.ok:
        value = result.value
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json", by_alias=True)
        return jsonify({key: value}), status
    code = ErrorCode(result.error)
    return error_body(int(code), code.label, result.message or code.label), STATUS_BY_CODE[code]


def record_fields(body: dict) -> Tuple[Any, Any, Any, Any]:
    return (
        body.get("produceIdentifier"),
        body.get("productionVolume"),
        body.get("locationMetadata"),
        body.get("categoryDescriptors"),
    )


@bp.before_request
def require_identity():
    if request.endpoint == "records.health_check":
        return None
    if caller_identity() is None:
        return error_body(401, "IdentityRequired", f"missing {IDENTITY_HEADER} header"), 401
    return None


@bp.route("/api/health")
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "version": __version__,
        "schema": __schema__,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    })


@bp.route("/api/records", methods=["POST"])
def create_record():
    """
    Register a produce batch.

    Body: {"produceIdentifier", "productionVolume", "locationMetadata", "categoryDescriptors"}
    """
    body = request.get_json(silent=True) or {}
    name, volume, location, tags = record_fields(body)
    result = get_ledger().create_agricultural_record(caller_identity(), name, volume, location, tags)
    return respond(result, "sequenceId", 201)


@bp.route("/api/records/<int:sequence_id>", methods=["GET"])
def get_record(sequence_id: int):
    """Full record; the caller needs verify standing (owner, grantee or authority)."""
    return respond(get_ledger().get_record(caller_identity(), sequence_id), "record")


@bp.route("/api/records/<int:sequence_id>/verify", methods=["POST"])
def verify_record(sequence_id: int):
    """Body: {"expectedCultivator": "..."}"""
    body = request.get_json(silent=True) or {}
    expected = body.get("expectedCultivator", "")
    result = get_ledger().verify_asset_authenticity(caller_identity(), sequence_id, expected)
    return respond(result, "report")


@bp.route("/api/records/<int:sequence_id>/transfer", methods=["POST"])
def transfer_record(sequence_id: int):
    """Body: {"recipient": "..."}"""
    body = request.get_json(silent=True) or {}
    recipient = body.get("recipient")
    if not recipient:
        return error_body(400, "BadRequest", "recipient is required"), 400
    result = get_ledger().transfer_asset_ownership(caller_identity(), sequence_id, recipient)
    return respond(result, "transferred")


@bp.route("/api/records/<int:sequence_id>/access/<target>", methods=["DELETE"])
def revoke_access(sequence_id: int, target: str):
    result = get_ledger().revoke_ledger_access(caller_identity(), sequence_id, target)
    return respond(result, "revoked")


@bp.route("/api/records/<int:sequence_id>/tags", methods=["POST"])
def append_tags(sequence_id: int):
    """Body: {"categoryDescriptors": [...]}"""
    body = request.get_json(silent=True) or {}
    tags = body.get("categoryDescriptors")
    result = get_ledger().append_asset_metadata(caller_identity(), sequence_id, tags)
    return respond(result, "categoryDescriptors")


@bp.route("/api/records/<int:sequence_id>", methods=["PUT"])
def modify_record(sequence_id: int):
    body = request.get_json(silent=True) or {}
    name, volume, location, tags = record_fields(body)
    result = get_ledger().modify_asset_record(caller_identity(), sequence_id, name, volume, location, tags)
    return respond(result, "modified")


@bp.route("/api/records/<int:sequence_id>", methods=["DELETE"])
def purge_record(sequence_id: int):
    result = get_ledger().purge_asset_record(caller_identity(), sequence_id)
    return respond(result, "purged")


@bp.route("/api/records/<int:sequence_id>/restrict", methods=["POST"])
def restrict_record(sequence_id: int):
    result = get_ledger().activate_emergency_restriction(caller_identity(), sequence_id)
    return respond(result, "restricted")


def create_app(ledger: Optional[ProvenanceLedger] = None) -> Flask:
    """
    Build the Flask app.

    Without an explicit ledger, the file-backed ledger from Settings.load()
    is opened on first use.
    """
    app = Flask(__name__)
    CORS(app)
    app.config["LEDGER"] = ledger
    app.register_blueprint(bp)
    return app


app = create_app()


if __name__ == "__main__":
    settings = Settings.load()
    configure_logging(settings)
    app.run(port=8080)
