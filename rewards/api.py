import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .chain import TokenLedgerClient, format_amount
from .config import ConfigurationError, Settings, get_settings
from .errors import (
    AlreadyRegisteredError,
    ChainError,
    CustomerNotRegisteredError,
    InternalInconsistencyError,
    InvalidAddressError,
    InvalidInputError,
    RewardServiceError,
)
from .logging_config import setup_logging
from .models import (
    BusinessStatus,
    CustomerDetail,
    RegisterWalletRequest,
    RegistrationResponse,
    RewardReceipt,
    SendRewardRequest,
    TransactionHistory,
)
from .service import DEFAULT_TRANSACTION_LIMIT, RewardService

logger = logging.getLogger(__name__)


def build_reward_service(settings: Settings) -> RewardService:
    return RewardService(
        TokenLedgerClient.from_settings(settings),
        reward_amount=settings.reward_amount,
        registration_policy=settings.registration_policy,
        explorer_tx_url=settings.explorer_tx_url,
        native_symbol=settings.native_symbol,
    )


def get_reward_service(request: Request) -> RewardService:
    return request.app.state.reward_service


def _http_error(status_code: int, exc: RewardServiceError) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": exc.message, "code": exc.kind})


def _parse_limit(raw: Optional[str]) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_TRANSACTION_LIMIT
    except ValueError:
        return DEFAULT_TRANSACTION_LIMIT
    return limit if limit > 0 else DEFAULT_TRANSACTION_LIMIT


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc) or "Internal server error"},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        field = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
        message = f"{field}: {errors[0].get('msg')}" if field else errors[0].get("msg")
    else:
        message = InvalidInputError.default_message
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message, "code": InvalidInputError.kind},
    )


def create_app(service: RewardService, cors_origins: Optional[list[str]] = None) -> FastAPI:
    app = FastAPI(
        title="Purchase Rewards API",
        description="Pays a fixed token reward to a customer's wallet for every purchase",
        version="1.0.0",
    )
    app.state.reward_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health", tags=["System"])
    def health_check(service: RewardService = Depends(get_reward_service)):
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "wallet": service.ledger.address,
        }

    @app.post("/api/register-wallet", response_model=RegistrationResponse, tags=["Customers"])
    def register_wallet(
        request: RegisterWalletRequest,
        service: RewardService = Depends(get_reward_service),
    ) -> RegistrationResponse:
        try:
            service.register_customer(request.wallet_address, request.name, request.email)
        except InvalidAddressError as e:
            raise _http_error(status.HTTP_400_BAD_REQUEST, e)
        except AlreadyRegisteredError as e:
            raise _http_error(status.HTTP_409_CONFLICT, e)
        return RegistrationResponse(wallet_address=request.wallet_address)

    @app.post("/api/send-reward", response_model=RewardReceipt, tags=["Rewards"])
    def send_reward(
        request: SendRewardRequest,
        service: RewardService = Depends(get_reward_service),
    ) -> RewardReceipt:
        try:
            return service.send_reward(request.wallet_address, request.purchase_id, request.purchase_amount)
        except (InvalidAddressError, InvalidInputError) as e:
            raise _http_error(status.HTTP_400_BAD_REQUEST, e)
        except CustomerNotRegisteredError as e:
            raise _http_error(status.HTTP_404_NOT_FOUND, e)
        except (ChainError, InternalInconsistencyError) as e:
            raise _http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    @app.get("/api/business-balance", response_model=BusinessStatus, tags=["Business"])
    def business_balance(service: RewardService = Depends(get_reward_service)) -> BusinessStatus:
        try:
            return service.get_business_status()
        except ChainError as e:
            logger.error("Could not read business balance: %s", e.message)
            raise _http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    @app.get("/api/customer/{wallet_address}", response_model=CustomerDetail, tags=["Customers"])
    def get_customer(
        wallet_address: str,
        service: RewardService = Depends(get_reward_service),
    ) -> CustomerDetail:
        try:
            return service.get_customer(wallet_address)
        except CustomerNotRegisteredError as e:
            raise _http_error(status.HTTP_404_NOT_FOUND, e)

    @app.get("/api/transactions", response_model=TransactionHistory, tags=["Rewards"])
    def list_transactions(
        limit: Optional[str] = None,
        service: RewardService = Depends(get_reward_service),
    ) -> TransactionHistory:
        return service.list_transactions(_parse_limit(limit))

    return app


def log_startup(service: RewardService, settings: Settings) -> None:
    logger.info("Reward server listening on http://%s:%s", settings.host, settings.port)
    logger.info("Business wallet: %s", service.ledger.address)
    logger.info("Token contract: %s", settings.token_contract_address)
    logger.info("Reward per purchase: %s", settings.reward_amount)
    logger.info("Registration policy: %s", service.registration_policy.value)
    try:
        metadata = service.ledger.get_token_metadata()
        token = service.ledger.get_token_balance(service.ledger.address)
        native = service.ledger.get_native_balance(service.ledger.address)
    except ChainError as e:
        logger.warning("Could not read initial balances: %s", e.message)
        return
    logger.info("Token balance: %s", format_amount(token, metadata.symbol))
    logger.info("Native balance: %s", format_amount(native, settings.native_symbol))


def main() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    try:
        service = build_reward_service(settings)
    except ConfigurationError as e:
        logger.critical("%s. Set them in the environment or a .env file.", e)
        sys.exit(1)

    log_startup(service, settings)
    app = create_app(service, settings.cors_origin_list)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
