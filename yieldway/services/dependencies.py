"""Process-wide collaborators, built lazily so missing config only fails its users."""
from __future__ import annotations

from typing import Optional

from yieldway.execution.deposit import YieldDepositOrchestrator
from yieldway.execution.funding import FundingOrchestrator
from yieldway.execution.international import InternationalTransferOrchestrator
from yieldway.execution.reconciler import PositionReconciler
from yieldway.execution.settlement import MockSettlementNetwork, SettlementProvider
from yieldway.execution.transfers import TransferOrchestrator
from yieldway.onchain.gateway import ChainGateway
from yieldway.services.accounts import AccountService
from yieldway.services.ledger import LedgerStore
from yieldway.services.wallets import WalletProvisioner

_ledger: Optional[LedgerStore] = None
_gateway: Optional[ChainGateway] = None
_provisioner: Optional[WalletProvisioner] = None
_settlement: Optional[SettlementProvider] = None
_funding: Optional[FundingOrchestrator] = None


def get_ledger() -> LedgerStore:
    global _ledger
    if _ledger is None:
        _ledger = LedgerStore()
    return _ledger


def get_gateway() -> ChainGateway:
    global _gateway
    if _gateway is None:
        _gateway = ChainGateway()
    return _gateway


def get_provisioner() -> WalletProvisioner:
    global _provisioner
    if _provisioner is None:
        _provisioner = WalletProvisioner(get_ledger())
    return _provisioner


def get_settlement() -> SettlementProvider:
    global _settlement
    if _settlement is None:
        _settlement = MockSettlementNetwork()
    return _settlement


def get_funding() -> FundingOrchestrator:
    global _funding
    if _funding is None:
        _funding = FundingOrchestrator(get_gateway())
    return _funding


def get_account_service() -> AccountService:
    return AccountService(get_ledger(), get_provisioner())


def get_depositor() -> YieldDepositOrchestrator:
    return YieldDepositOrchestrator(get_gateway(), get_provisioner(), get_ledger())


def get_reconciler() -> PositionReconciler:
    return PositionReconciler(get_gateway(), get_ledger(), get_account_service())


def get_transfer_orchestrator() -> TransferOrchestrator:
    return TransferOrchestrator(get_ledger(), get_account_service())


def get_international() -> InternationalTransferOrchestrator:
    return InternationalTransferOrchestrator(get_ledger(), get_settlement())


def reset_dependencies() -> None:
    global _ledger, _gateway, _provisioner, _settlement, _funding
    _ledger = None
    _gateway = None
    _provisioner = None
    _settlement = None
    _funding = None
