"""Payment strategies: the wallet port and its adapters."""

from payments.wallet.fake_adapter import FakeWallet
from payments.wallet.manual import ManualPaymentStrategy
from payments.wallet.nwc import WalletConnection, WalletConnectStrategy
from payments.wallet.port import Payable, PaymentStrategy, PayResult
from payments.wallet.webln import BrowserWallet, BrowserWalletStrategy

__all__ = [
    "BrowserWallet",
    "BrowserWalletStrategy",
    "FakeWallet",
    "ManualPaymentStrategy",
    "Payable",
    "PaymentStrategy",
    "PayResult",
    "WalletConnection",
    "WalletConnectStrategy",
]
