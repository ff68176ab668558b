"""aiohttp boundary for inbound integration webhooks.

Route: ``POST /webhooks/{platform}/{integration_id}/{webhook_secret}``

Order of checks:
1. webhook secret (404 on failure, before the body is read)
2. integration enabled (503)
3. platform signature verifier (401); a platform without a registered
   verifier is rejected, use ``unsigned`` to opt a platform out explicitly
4. payload processor
"""
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Optional

from aiohttp import web

from .vault.models import AppIntegration
from .vault.guard import WebhookSecretGuard
from .vault.migration import normalize_platform

logger = logging.getLogger("navigator.integrations")

WEBHOOK_ROUTE = "/webhooks/{platform}/{integration_id}/{webhook_secret}"

NOT_FOUND_BODY = {"error": "Not Found"}

SignatureVerifier = Callable[[AppIntegration, web.Request, bytes], Awaitable[bool]]
PayloadProcessor = Callable[
    [AppIntegration, web.Request, bytes], Awaitable[web.StreamResponse]
]


async def unsigned(
    integration: AppIntegration, request: web.Request, body: bytes,
) -> bool:
    """Verifier for platforms that sign nothing; the webhook secret is all."""
    return True


def not_found() -> web.Response:
    """The single response used for every rejected webhook secret."""
    return web.json_response(NOT_FOUND_BODY, status=404)


class WebhookHandler:
    """Request handler guarding a payload processor."""

    def __init__(
        self,
        guard: WebhookSecretGuard,
        processor: PayloadProcessor,
        verifiers: Optional[Mapping[str, SignatureVerifier]] = None,
    ):
        self.guard = guard
        self.processor = processor
        self.verifiers = {
            normalize_platform(name): verifier
            for name, verifier in (verifiers or {}).items()
        }

    async def handle(self, request: web.Request) -> web.StreamResponse:
        match = request.match_info
        integration, ok = await self.guard.validate(
            match.get("integration_id"),
            match.get("webhook_secret"),
            platform=match.get("platform"),
        )
        if not ok:
            return not_found()
        if not integration.is_enabled:
            logger.warning("Integration %s is disabled", integration.id)
            return web.json_response(
                {"error": "Integration disabled"}, status=503,
            )
        verifier = self.verifiers.get(normalize_platform(integration.platform_id))
        if verifier is None:
            logger.error(
                "No signature verifier registered for platform %s "
                "(integration %s)",
                integration.platform_id, integration.id,
            )
            return web.json_response({"error": "Invalid signature"}, status=401)
        body = await request.read()
        if not await verifier(integration, request, body):
            logger.warning(
                "Signature verification failed for integration %s",
                integration.id,
            )
            return web.json_response({"error": "Invalid signature"}, status=401)
        return await self.processor(integration, request, body)


def setup_webhook_routes(
    app: web.Application,
    guard: WebhookSecretGuard,
    processor: PayloadProcessor,
    verifiers: Optional[Mapping[str, SignatureVerifier]] = None,
) -> WebhookHandler:
    """Register the webhook route on ``app``."""
    handler = WebhookHandler(guard, processor, verifiers)
    app.router.add_post(WEBHOOK_ROUTE, handler.handle)
    return handler
