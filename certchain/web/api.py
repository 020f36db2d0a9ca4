"""
HTTP API.

Thin aiohttp adapter over the certificate services. Handlers parse
input, call one service operation and serialize the result; domain errors
are mapped to JSON responses by the error middleware.

Caller identity arrives in the X-Wallet-Address header, authenticated
upstream. Mint, batch mint and revoke reject requests without it.
"""

import asyncio
from typing import Any

from aiohttp import web
from loguru import logger

from certchain.config.constants import DEFAULT_ISSUER_LIST_LIMIT
from certchain.initialization.services import Services
from certchain.services.certificate.models import MintRequest
from certchain.utils.exceptions import (
    AuthorizationError,
    CertificateServiceError,
    ValidationError,
)

SERVICES_KEY = web.AppKey("services", Services)
WALLET_HEADER = "X-Wallet-Address"
API_PREFIX = "/api/v1"


def _ok(data: Any, status: int = 200) -> web.Response:
    return web.json_response({"success": True, "data": data}, status=status)


def _services(request: web.Request) -> Services:
    return request.app[SERVICES_KEY]


async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _caller_address(request: web.Request) -> str:
    """Wallet address of the authenticated caller; required for mutations."""
    address = request.headers.get(WALLET_HEADER, "").strip()
    if not address:
        raise AuthorizationError(f"{WALLET_HEADER} header is required")
    return address


def _int_query(request: web.Request, name: str, default: int, minimum: int = 0) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer") from e
    if value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}")
    return value


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Map domain errors to {success: false, error: {...}} responses."""
    try:
        return await handler(request)
    except CertificateServiceError as e:
        include_details = _services(request).expose_error_details
        if e.http_status >= 500:
            logger.error(f"{request.method} {request.path} -> {e.code}: {e.reason or e.message}")
        else:
            logger.info(f"{request.method} {request.path} -> {e.code}")
        return web.json_response(
            {"success": False, "error": e.to_dict(include_details=include_details)},
            status=e.http_status,
        )
    except web.HTTPException:
        raise
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        return web.json_response(
            {
                "success": False,
                "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"},
            },
            status=500,
        )


# ----------------------------------------------------------------------
# Certificates
# ----------------------------------------------------------------------


async def mint_handler(request: web.Request) -> web.Response:
    caller = _caller_address(request)
    body = await _json_body(request)
    mint = MintRequest.from_dict(body)
    outcome = await _services(request).engine.mint(
        mint.recipient_address,
        mint.recipient_name,
        mint.course_name,
        mint.institution_name,
        mint.metadata_uri,
        issuer_address=caller,
        recipient_contact=mint.recipient_contact,
    )
    return _ok(outcome.to_dict(), status=201)


async def get_certificate_handler(request: web.Request) -> web.Response:
    record = await _services(request).engine.get(request.match_info["token_id"])
    return _ok(record.to_dict())


async def verify_handler(request: web.Request) -> web.Response:
    result = await _services(request).query.verify_token(request.match_info["token_id"])
    return _ok(result.to_dict())


async def issuer_handler(request: web.Request) -> web.Response:
    """Recent certificates of an issuer (event window), newest first."""
    limit = _int_query(request, "limit", DEFAULT_ISSUER_LIST_LIMIT, minimum=1)
    offset = _int_query(request, "offset", 0)
    records = await _services(request).engine.list_by_issuer(
        request.match_info["address"], limit=limit + offset
    )
    page = list(reversed(records))[offset:offset + limit]
    return _ok(
        {
            "certificates": [r.to_dict() for r in page],
            "pagination": {"limit": limit, "offset": offset, "count": len(page)},
        }
    )


async def issuer_all_handler(request: web.Request) -> web.Response:
    records = await _services(request).query.certificates_by_issuer(request.match_info["address"])
    return _ok({"certificates": [r.to_dict() for r in records], "count": len(records)})


async def recipient_handler(request: web.Request) -> web.Response:
    records = await _services(request).query.certificates_by_recipient(
        request.match_info["address"]
    )
    return _ok({"certificates": [r.to_dict() for r in records], "count": len(records)})


async def batch_verify_handler(request: web.Request) -> web.Response:
    body = await _json_body(request)
    token_ids = body.get("tokenIds")
    if not isinstance(token_ids, list):
        raise ValidationError("tokenIds must be an array")
    report = await _services(request).batch.verify_many(token_ids)
    return _ok(report.to_dict())


async def batch_mint_handler(request: web.Request) -> web.Response:
    caller = _caller_address(request)
    body = await _json_body(request)
    items = body.get("certificates")
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ValidationError("certificates must be an array of objects")
    report = await _services(request).batch.mint_many(
        [MintRequest.from_dict(item) for item in items],
        issuer_address=caller,
    )
    return _ok(report.to_dict())


async def revoke_handler(request: web.Request) -> web.Response:
    caller = _caller_address(request)
    outcome = await _services(request).engine.revoke(
        request.match_info["token_id"],
        requester_address=caller,
    )
    return _ok(outcome.to_dict())


# ----------------------------------------------------------------------
# Network / health
# ----------------------------------------------------------------------


async def network_info_handler(request: web.Request) -> web.Response:
    return _ok(await _services(request).engine.network_info())


async def stats_handler(request: web.Request) -> web.Response:
    return _ok(await _services(request).engine.stats())


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with RPC reachability and queue depth
    """
    services = _services(request)
    try:
        block_number = await services.client.block_number()
    except CertificateServiceError as e:
        logger.error(f"Health check failed: {e.reason or e.message}")
        return web.json_response(
            {"status": "unhealthy", "error": e.code},
            status=503,
        )

    return web.json_response(
        {
            "status": "healthy",
            "blockNumber": block_number,
            "signerConfigured": services.client.has_signer,
            "notificationQueue": services.notifier.queue.qsize(),
        }
    )


async def _start_notifier(app: web.Application) -> None:
    app[SERVICES_KEY].notifier.start()


async def _stop_notifier(app: web.Application) -> None:
    await app[SERVICES_KEY].notifier.stop()


def create_app(services: Services) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        services: Wired service graph

    Returns:
        web.Application
    """
    app = web.Application(middlewares=[error_middleware])
    app[SERVICES_KEY] = services

    certificates = f"{API_PREFIX}/certificates"
    app.router.add_post(f"{certificates}/mint", mint_handler)
    app.router.add_post(f"{certificates}/batch-verify", batch_verify_handler)
    app.router.add_post(f"{certificates}/batch-mint", batch_mint_handler)
    app.router.add_post(f"{certificates}/verify/{{token_id}}", verify_handler)
    app.router.add_get(f"{certificates}/issuer/{{address}}/all", issuer_all_handler)
    app.router.add_get(f"{certificates}/issuer/{{address}}", issuer_handler)
    app.router.add_get(f"{certificates}/recipient/{{address}}", recipient_handler)
    app.router.add_post(f"{certificates}/{{token_id}}/revoke", revoke_handler)
    app.router.add_get(f"{certificates}/{{token_id}}", get_certificate_handler)
    app.router.add_get(f"{API_PREFIX}/network-info", network_info_handler)
    app.router.add_get(f"{API_PREFIX}/stats", stats_handler)
    app.router.add_get("/health", health_handler)

    app.on_startup.append(_start_notifier)
    app.on_cleanup.append(_stop_notifier)
    return app
