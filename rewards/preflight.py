"""
Readiness checks for the reward server.

Verifies configuration, node connectivity, the custodial wallet's gas and
token balances, and that the listening port is free, before the server is
started.

    rewards-preflight [--port 3000]
"""

import argparse
import logging
import socket
import sys
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from .chain import TokenLedgerClient, format_amount
from .config import ConfigurationError, Settings, get_settings
from .errors import ChainError
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

MIN_NATIVE_BALANCE = Decimal("0.1")
MIN_REWARDS_IN_STOCK = 10


class CheckStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


@dataclass
class CheckResult:
    name: str
    status: CheckStatus
    detail: str = ""


@dataclass
class PreflightReport:
    results: list[CheckResult] = field(default_factory=list)

    def add(self, name: str, status: CheckStatus, detail: str = "") -> CheckResult:
        result = CheckResult(name, status, detail)
        self.results.append(result)
        return result

    def count(self, status: CheckStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def ok(self) -> bool:
        return self.count(CheckStatus.FAILED) == 0


def port_is_free(port: int, host: str = "0.0.0.0") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def run_checks(settings: Settings, ledger=None, check_port: bool = True) -> PreflightReport:
    """
    Run the checks in order, stopping early when a later check cannot run.

    `ledger` may be passed in (tests); otherwise it is built from settings.
    """
    report = PreflightReport()

    try:
        settings.require_chain_credentials()
    except ConfigurationError as e:
        report.add("configuration", CheckStatus.FAILED, str(e))
        return report
    report.add("configuration", CheckStatus.PASSED, "RPC_URL and BUSINESS_PRIVATE_KEY set")

    if ledger is None:
        try:
            ledger = TokenLedgerClient.from_settings(settings)
        except (ValueError, ConfigurationError) as e:
            report.add("wallet", CheckStatus.FAILED, f"Could not load business wallet: {e}")
            return report

    try:
        chain_id = ledger.get_chain_id()
    except ChainError as e:
        report.add("rpc", CheckStatus.FAILED, f"Could not connect to RPC: {e.message}")
        return report
    if chain_id == settings.expected_chain_id:
        report.add("rpc", CheckStatus.PASSED, f"Connected (chainId: {chain_id})")
    else:
        report.add(
            "rpc", CheckStatus.WARNING,
            f"Connected to chainId {chain_id}, expected {settings.expected_chain_id}",
        )

    report.add("wallet", CheckStatus.PASSED, f"Business wallet: {ledger.address}")

    try:
        native = ledger.get_native_balance(ledger.address)
    except ChainError as e:
        report.add("native_balance", CheckStatus.FAILED, e.message)
    else:
        shown = format_amount(native, settings.native_symbol)
        if native <= 0:
            report.add("native_balance", CheckStatus.FAILED, f"{shown}: nothing to pay gas with")
        elif native < MIN_NATIVE_BALANCE:
            report.add(
                "native_balance", CheckStatus.WARNING,
                f"{shown}: low, at least {MIN_NATIVE_BALANCE} recommended",
            )
        else:
            report.add("native_balance", CheckStatus.PASSED, shown)

    try:
        metadata = ledger.get_token_metadata()
    except ChainError as e:
        report.add("token_contract", CheckStatus.FAILED, f"Could not read contract: {e.message}")
    else:
        report.add(
            "token_contract", CheckStatus.PASSED,
            f"{metadata.symbol} ({metadata.decimals} decimals) at {settings.token_contract_address}",
        )
        try:
            tokens = ledger.get_token_balance(ledger.address)
        except ChainError as e:
            report.add("token_balance", CheckStatus.FAILED, e.message)
        else:
            shown = format_amount(tokens, metadata.symbol)
            if tokens < settings.reward_amount:
                report.add("token_balance", CheckStatus.FAILED, f"{shown}: not enough for one reward")
            elif tokens < settings.reward_amount * MIN_REWARDS_IN_STOCK:
                report.add("token_balance", CheckStatus.WARNING, f"{shown}: low, consider topping up")
            else:
                report.add("token_balance", CheckStatus.PASSED, shown)

    if check_port:
        if port_is_free(settings.port, settings.host):
            report.add("port", CheckStatus.PASSED, f"Port {settings.port} available")
        else:
            report.add("port", CheckStatus.WARNING, f"Port {settings.port} already in use")

    return report


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check that the reward server is ready to run")
    parser.add_argument("--port", type=int, help="Port to check instead of PORT")
    parser.add_argument("--skip-port", action="store_true", help="Do not check the listening port")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.port is not None:
        settings = settings.model_copy(update={"port": args.port})
    setup_logging(settings.log_level, settings.log_json)

    report = run_checks(settings, check_port=not args.skip_port)
    for result in report.results:
        level = {
            CheckStatus.PASSED: logging.INFO,
            CheckStatus.WARNING: logging.WARNING,
            CheckStatus.FAILED: logging.ERROR,
        }[result.status]
        logger.log(level, "%-15s %-8s %s", result.name, result.status.value, result.detail)

    logger.info(
        "%d passed, %d warnings, %d failed",
        report.count(CheckStatus.PASSED),
        report.count(CheckStatus.WARNING),
        report.count(CheckStatus.FAILED),
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
