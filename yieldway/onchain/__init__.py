"""On-chain integration helpers."""

from yieldway.onchain.crypto import FernetSecretCipher, SecretCipher, get_cipher
from yieldway.onchain.gateway import ChainGateway, TransactionStatus, from_base_units, to_base_units
from yieldway.onchain.wallet import MasterWallet, generate_keypair, load_signer

__all__ = [
    "ChainGateway",
    "TransactionStatus",
    "FernetSecretCipher",
    "SecretCipher",
    "MasterWallet",
    "from_base_units",
    "generate_keypair",
    "get_cipher",
    "load_signer",
    "to_base_units",
]
