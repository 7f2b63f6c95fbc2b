from coauthor.services.bank_verify_gateway import BankVerifyGateway
from coauthor.services.wallet_gateway import WalletGateway


def get_wallet_gateway() -> WalletGateway:
    return WalletGateway()


def get_bank_gateway() -> BankVerifyGateway:
    return BankVerifyGateway()
