"""Summary: FastAPI application for ShopLink.

Importance: Exposes the OAuth initiation and callback endpoints over HTTP.
Alternatives: Use serverless handlers per endpoint or a different web framework.
"""

from __future__ import annotations

import logging

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from shoplink.app import build_services
from shoplink.config import AppConfig
from shoplink.errors import InvalidRequest


logger = logging.getLogger(__name__)


class AuthorizationRequest(BaseModel):
    """Summary: Request payload for starting an OAuth flow.

    Importance: Keeps initiation inputs explicit for API clients.
    Alternatives: Use query parameters instead of JSON payloads.
    """

    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(default="", alias="subjectId")
    provider_domain: str = Field(default="", alias="providerDomain")
    client_id: str = Field(default="", alias="clientId")


def create_app(config: AppConfig) -> FastAPI:
    """Summary: Create a FastAPI app wired to ShopLink services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="ShopLink API", version="0.1.0")
    services = build_services(config)
    app.state.services = services
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-API-Key"],
        )

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for private deployments.
        Alternatives: Use session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.exception_handler(RequestValidationError)
    async def invalid_body(_request: Request, _exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok"}

    @app.post("/oauth/authorize", dependencies=[Depends(require_api_key)])
    def authorize(payload: AuthorizationRequest) -> JSONResponse:
        """Summary: Return the provider authorization URL for a shop.

        Importance: Starts the OAuth flow with a signed, expiring state.
        Alternatives: Redirect the browser directly from this endpoint.
        """

        try:
            url = services.authorization.build_authorization_url(
                payload.subject_id,
                payload.provider_domain,
                payload.client_id,
            )
        except InvalidRequest as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        except Exception:
            logger.exception("Failed to build authorization URL for %s.", payload.subject_id)
            return JSONResponse(
                status_code=500, content={"error": "Failed to build authorization URL"}
            )
        return JSONResponse(content={"authorizationUrl": url})

    @app.get("/oauth/callback")
    def oauth_callback(
        background_tasks: BackgroundTasks,
        code: str | None = None,
        state: str | None = None,
        shop: str | None = None,
    ) -> RedirectResponse:
        """Summary: Complete the OAuth flow and redirect to a result page.

        Importance: Always answers with a redirect annotated with the outcome.
        Alternatives: Render an HTML result page from the callback itself.
        """

        outcome = services.callbacks.handle(code, state, shop)
        if outcome.liveness_check is not None:
            background_tasks.add_task(outcome.liveness_check.run)
        return RedirectResponse(outcome.redirect_url, status_code=302)

    return app


def build_app() -> FastAPI:
    """Build the app from the environment; used as the uvicorn factory."""

    return create_app(AppConfig.from_env())
