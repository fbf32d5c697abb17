#!/usr/bin/env python3
"""
Token Broker - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds storage, connection store, ledger and lifecycle engine
3. Runs the API and the periodic reconciliation task

All token semantics live in the modules; this file only maps them to HTTP.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from tokenbroker import __version__
from tokenbroker.config.provider import ConfigProvider, EngineConfig, EnvConfigProvider
from tokenbroker.errors import (
    AuthError,
    BrokerError,
    ConflictError,
    NotFound,
    StorageError,
    TransportError,
    ValidationError,
)
from tokenbroker.logging_config import configure_logging, get_logging_config
from tokenbroker.modules.api import (
    ConnectionListResponse,
    ConnectionResponse,
    ConnectionWriteRequest,
    ConnectionWriteResponse,
    ErrorResponse,
    IssuedTokenResponse,
    IssueTokenRequest,
    ReconcileResponse,
    TokenListResponse,
    TokenSummary,
    TokenValidationResponse,
)
from tokenbroker.modules.auth import AuthModule
from tokenbroker.modules.config import get_config
from tokenbroker.modules.connections import ConnectionStore, default_client_factory
from tokenbroker.modules.ledger import TokenLedger, TokenRecord
from tokenbroker.modules.lifecycle import LifecycleEngine, ReconcileScheduler
from tokenbroker.modules.storage import StorageModule

logger = logging.getLogger("tokenbroker.main")

ERROR_STATUS = {
    ValidationError: 400,
    NotFound: 404,
    ConflictError: 409,
    AuthError: 502,
    TransportError: 504,
    StorageError: 503,
}


def status_for(exc: BrokerError) -> int:
    """Map an error to an HTTP status, most specific class first."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


async def build_from_env(app: FastAPI, config_provider: ConfigProvider) -> None:
    """Wire every module from environment configuration into app.state."""
    config = get_config()
    configure_logging(config.get("log_level"))

    engine_config = config_provider.get_engine_config()
    auth_config = config_provider.get_auth_config()

    storage_module = StorageModule(
        connection_url=config.redis_url(),
        password=config.get("redis_password"),
        namespace=config.get("redis_namespace"),
        seal_key=config.get("seal_key"),
    )
    storage = await storage_module.build_storage()

    connections = ConnectionStore(
        storage,
        client_factory=default_client_factory(engine_config.request_timeout),
        probe_ttl=engine_config.probe_token_ttl,
    )
    engine = LifecycleEngine(connections, TokenLedger(storage))

    app.state.storage_module = storage_module
    app.state.engine = engine
    app.state.engine_config = engine_config
    app.state.auth_module = AuthModule(auth_config.api_keys, require_auth=auth_config.require_auth)
    app.state.scheduler = ReconcileScheduler(engine, interval=engine_config.reconcile_interval)


def create_app(
    engine: Optional[LifecycleEngine] = None,
    auth_module: Optional[AuthModule] = None,
    engine_config: Optional[EngineConfig] = None,
    config_provider: Optional[ConfigProvider] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    When an engine is passed in (tests, embedding) it is used as-is and no
    Redis connection or scheduler is created.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting token broker...")

        if app.state.engine is None:
            await build_from_env(app, config_provider or EnvConfigProvider())

        scheduler = app.state.scheduler
        if scheduler:
            scheduler.start()

        logger.info("Token broker started successfully")

        yield

        logger.info("Shutting down token broker...")
        if scheduler:
            await scheduler.stop()
        if app.state.storage_module:
            await app.state.storage_module.disconnect()
        logger.info("Token broker shutdown complete")

    app = FastAPI(
        title="Token Broker API",
        description="Short-lived remote authentication tokens with automatic revocation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.auth_module = auth_module
    app.state.engine_config = engine_config or EngineConfig(
        reconcile_interval=60, request_timeout=30, default_token_ttl=3600, probe_token_ttl=60
    )
    app.state.scheduler = None
    app.state.storage_module = None

    register_routes(app)
    return app


# Dependency injection helpers


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, description="API key for authentication"),
) -> Optional[str]:
    """Verify API key and return the caller's service identity."""
    auth_module: Optional[AuthModule] = request.app.state.auth_module
    if not auth_module:
        raise HTTPException(503, "Service not initialized")

    is_valid, service_identity = auth_module.verify_api_key(x_api_key)
    if not is_valid:
        raise HTTPException(401, "Invalid API key")

    return service_identity


async def get_engine(request: Request) -> LifecycleEngine:
    engine: Optional[LifecycleEngine] = request.app.state.engine
    if not engine:
        raise HTTPException(503, "Service not initialized")
    return engine


def _summary(record: TokenRecord) -> TokenSummary:
    return TokenSummary(**record.summary())


def register_routes(app: FastAPI) -> None:
    """Attach all endpoints and error handlers to the app."""

    # Connection Endpoints

    @app.put("/config/connection/{name}", response_model=ConnectionWriteResponse)
    async def write_connection(
        name: str,
        payload: ConnectionWriteRequest,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """
        Create or replace a connection after a live connectivity probe.

        Returns:
            200: Connection stored
            400: Missing input or probe failed (nothing stored)
            401: Unauthorized
        """
        connection = await engine.connections.write(
            name=name,
            endpoint=payload.endpoint,
            username=payload.username,
            password=payload.password,
            tls_policy=payload.tls_policy,
            login_provider=payload.login_provider,
        )
        logger.info(f"Connection {name} written by {identity or 'unknown'}")
        return ConnectionWriteResponse(**connection.redacted())

    @app.get("/config/connection/{name}", response_model=ConnectionResponse)
    async def read_connection(
        name: str,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """
        Read a connection without its credentials.

        Returns:
            200: Connection details
            404: Connection not found
        """
        connection = await engine.connections.read(name)
        return ConnectionResponse(**connection.redacted())

    @app.delete("/config/connection/{name}", status_code=204)
    async def delete_connection(
        name: str,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """Delete a connection. Existing tokens are not touched."""
        await engine.connections.delete(name)
        logger.info(f"Connection {name} deleted by {identity or 'unknown'}")
        return Response(status_code=204)

    @app.get("/config/connections", response_model=ConnectionListResponse)
    async def list_connections(
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        names = await engine.connections.list()
        return ConnectionListResponse(connections=names, count=len(names))

    # Token Endpoints

    @app.post("/token/{name}", response_model=IssuedTokenResponse, status_code=201)
    async def issue_token(
        name: str,
        request: Request,
        payload: Optional[IssueTokenRequest] = None,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """
        Issue a token on a connection.

        Returns:
            201: Token issued
            404: Connection not found
            502: Remote system rejected the request
            504: Remote system unreachable
        """
        ttl = payload.ttl if payload and payload.ttl else request.app.state.engine_config.default_token_ttl
        record = await engine.issue(name, ttl)
        logger.info(f"Token {record.token_id} issued to {identity or 'unknown'}")

        return IssuedTokenResponse(
            token_id=record.token_id,
            token=record.remote_value,
            connection_name=record.connection_name,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            ttl=ttl,
        )

    @app.get("/tokens", response_model=TokenListResponse)
    async def list_tokens(
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """List active tokens that have not expired."""
        records = await engine.list_tokens()
        tokens = [_summary(record) for record in records]
        return TokenListResponse(tokens=tokens, count=len(tokens))

    @app.get("/tokens/{token_id}", response_model=TokenSummary)
    async def get_token(
        token_id: str,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        record = await engine.get_token(token_id)
        return _summary(record)

    @app.delete("/tokens/{token_id}", response_model=TokenSummary)
    async def revoke_token(
        token_id: str,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """
        Revoke a token before it expires.

        Returns:
            200: Token revoked (or already inactive)
            404: Token or its connection not found
        """
        record = await engine.revoke(token_id)
        logger.info(f"Token {token_id} revoked by {identity or 'unknown'}")
        return _summary(record)

    @app.get("/tokens/{token_id}/validate", response_model=TokenValidationResponse)
    async def validate_token(
        token_id: str,
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        valid = await engine.validate(token_id)
        return TokenValidationResponse(token_id=token_id, valid=valid)

    # Admin Endpoints

    @app.post("/admin/reconcile", response_model=ReconcileResponse)
    async def run_reconcile(
        identity: Optional[str] = Depends(verify_api_key),
        engine: LifecycleEngine = Depends(get_engine),
    ):
        """Run one reconciliation pass now."""
        report = await engine.reconcile()
        return ReconcileResponse(**report.to_dict())

    # Health/Monitoring Endpoints

    @app.get("/healthz")
    async def healthz():
        """Minimal liveness probe."""
        return {"status": "ok"}

    @app.get("/health")
    async def health_check(request: Request):
        """
        Readiness check: storage reachable and engine initialized.

        Returns:
            200: Service healthy
            503: Service unhealthy
        """
        engine: Optional[LifecycleEngine] = request.app.state.engine
        if not engine:
            return JSONResponse(status_code=503, content={"status": "unhealthy", "engine": "not initialized"})

        try:
            await engine.connections.list()
        except StorageError as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "unhealthy", "storage": "unavailable"})

        scheduler = request.app.state.scheduler
        return {
            "status": "healthy",
            "storage": "connected",
            "reconciler": "running" if scheduler and scheduler.running else "stopped",
            "version": __version__,
        }

    # Error handlers

    @app.exception_handler(BrokerError)
    async def broker_error_handler(request: Request, exc: BrokerError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.kind} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=exc.kind, detail=str(exc)).model_dump(),
        )


app = create_app()


def main() -> None:
    config = get_config()
    api_config = EnvConfigProvider().get_api_config()
    uvicorn.run(
        "tokenbroker.main:app",
        host=api_config.host,
        port=api_config.port,
        log_level=config.get("log_level").lower(),
        reload=api_config.debug,
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    main()
