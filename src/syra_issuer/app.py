"""FastAPI binding of the issuer service.

Handlers only adapt JSON to ``IssuerService`` calls; error-to-status mapping
lives in the exception handlers below.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from instantiations.bls import G2CommitmentGroup, make_bls_params
from instantiations.bn254 import make_bn254_curve

from .config import Settings
from .dkg import DKGCoordinator
from .errors import DerivationFailure, PreconditionFailed, ProtocolFault, Unauthorized
from .groth16 import ProofVerifier, load_verifying_key
from .keystore import IssuerKeyStore
from .schemas import (
    DkgAbortRequest,
    DkgAckRequest,
    DkgShareRequest,
    DkgStartRequest,
    DkgStatusResponse,
    GenerateUserKeyRequest,
    IvkResponse,
    UserKeyResponse,
)
from .service import IssuerService
from .statement import HttpJwkProvider, ProofGate, StaticJwkProvider
from .transport import PEER_TOKEN_HEADER, HttpTransport

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("syra_issuer").setLevel(level.upper())


def build_service(settings: Settings) -> IssuerService:
    """Wire the production stack: BLS12-381 issuance, BN254 proof gate."""
    params = make_bls_params()
    curve = make_bn254_curve()
    verifier = ProofVerifier(load_verifying_key(settings.VERIFICATION_KEY_PATH, curve), curve)
    if settings.JWKS_PATH:
        jwks = StaticJwkProvider.from_file(settings.JWKS_PATH)
    else:
        jwks = HttpJwkProvider(settings.JWKS_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)
    gate = ProofGate(verifier, jwks, curve.order, subject_encoding=settings.SUBJECT_ENCODING)
    keystore = IssuerKeyStore(params)

    if settings.MODE != "threshold":
        return IssuerService(params, keystore, gate)

    group = G2CommitmentGroup()
    transport = HttpTransport(
        settings.PARTICIPANT_INDEX,
        settings.PEERS,
        group,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        auth_token=settings.DKG_SHARED_SECRET,
        retries=settings.DKG_SEND_RETRIES,
    )
    coordinator = DKGCoordinator(
        group,
        settings.PARTICIPANT_INDEX,
        settings.THRESHOLD_N,
        settings.THRESHOLD_T,
        transport,
        timeout=settings.DKG_TIMEOUT_SECONDS,
    )
    return IssuerService(
        params,
        keystore,
        gate,
        coordinator=coordinator,
        transport=transport,
        commitment_group=group,
        session_id=settings.DKG_SESSION_ID,
    )


def create_app(settings: Optional[Settings] = None, service: Optional[IssuerService] = None) -> FastAPI:
    settings = settings or Settings()
    service = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)
        if service.coordinator is None:
            if not service.keystore.ready:
                service.keystore.initialize(settings.TEST_ISK)
        elif not service.keystore.ready:
            service.start_dkg(settings.DKG_SESSION_ID)
        logger.info(f"[API] issuer up ({settings.MODE}, participant {settings.PARTICIPANT_INDEX})")
        yield
        if service.coordinator is not None:
            service.coordinator.abandon("shutdown")

    app = FastAPI(title="SyRA issuer", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.ALLOWED_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # ----------------------------
    # Error mapping
    # ----------------------------

    @app.exception_handler(Unauthorized)
    async def _unauthorized(request: Request, exc: Unauthorized):
        return JSONResponse(status_code=401, content={"detail": "verification failed"})

    @app.exception_handler(PreconditionFailed)
    async def _precondition(request: Request, exc: PreconditionFailed):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(DerivationFailure)
    async def _derivation(request: Request, exc: DerivationFailure):
        logger.error(f"[API] key derivation failed on {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "key derivation failed"})

    @app.exception_handler(ProtocolFault)
    async def _protocol(request: Request, exc: ProtocolFault):
        logger.warning(f"[API] {exc}")
        return JSONResponse(status_code=400, content={"detail": "share rejected"})

    # ----------------------------
    # Issuance
    # ----------------------------

    # Plain def: proof verification and derivation run in the worker pool.
    @app.post("/admin/generate_user_key", response_model=UserKeyResponse)
    def generate_user_key(req: GenerateUserKeyRequest):
        return service.authorize_and_derive(req.user_id, req.kid, req.proof)

    @app.get("/ivk", response_model=IvkResponse)
    def get_ivk():
        return {"ivk": service.published_ivk()}

    # ----------------------------
    # Threshold DKG
    # ----------------------------

    async def peer_token(request: Request) -> None:
        secret = settings.DKG_SHARED_SECRET
        if secret is None:
            return
        token = request.headers.get(PEER_TOKEN_HEADER, "")
        if not hmac.compare_digest(token.encode(), secret.encode()):
            logger.warning(f"[API] missing or wrong peer token on {request.url.path}")
            raise Unauthorized("bad peer token")

    peer_only = [Depends(peer_token)]

    @app.post("/admin/receive_dkg", dependencies=peer_only)
    async def receive_dkg(req: DkgShareRequest):
        offer, ok = await run_in_threadpool(service.precheck_share, req.model_dump())
        service.accept_share(offer, ok)
        return "OK"

    @app.post("/admin/receive_dkg_ack", dependencies=peer_only)
    async def receive_dkg_ack(req: DkgAckRequest):
        service.receive_ack(req.model_dump())
        return "OK"

    @app.post("/admin/receive_dkg_abort", dependencies=peer_only)
    async def receive_dkg_abort(req: DkgAbortRequest):
        service.receive_abort(req.model_dump())
        return "OK"

    @app.get("/admin/dkg", response_model=DkgStatusResponse)
    async def dkg_status():
        return service.dkg_status()

    @app.post("/admin/dkg/start", response_model=DkgStatusResponse, dependencies=peer_only)
    async def dkg_start(req: DkgStartRequest):
        service.start_dkg(req.round_id)
        return service.dkg_status()

    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
