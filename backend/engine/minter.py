"""SPL token minting on Solana.

A mint is one transaction: create the mint account, initialize it, create
the wallet's associated token account and mint the initial supply into it.
"""
import logging
from dataclasses import dataclass

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams, MintToParams, create_associated_token_account,
    get_associated_token_address, initialize_mint, mint_to,
)

from config import ConfigError

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
MINT_ACCOUNT_SIZE = 82
TOKEN_DECIMALS = 9
INITIAL_SUPPLY = 1_000_000


class MintError(Exception):
    """A mint transaction could not be built, sent or confirmed."""


@dataclass(frozen=True)
class MintResult:
    mint_address: str
    signature: str


def load_keypair(private_key: str) -> Keypair:
    try:
        return Keypair.from_base58_string(private_key)
    except Exception as e:
        raise ConfigError(f"PRIVATE_KEY is not a valid base58 Solana secret key: {e}")


class SolanaTokenMinter:
    def __init__(self, rpc_url: str, wallet: Keypair):
        self.rpc_url = rpc_url
        self.wallet = wallet
        self.client = AsyncClient(rpc_url, commitment=Confirmed)

    @classmethod
    def from_settings(cls, settings) -> "SolanaTokenMinter":
        return cls(settings.solana_rpc_url, load_keypair(settings.private_key))

    @property
    def wallet_address(self) -> str:
        return str(self.wallet.pubkey())

    async def get_balance_sol(self) -> float:
        resp = await self.client.get_balance(self.wallet.pubkey())
        return resp.value / LAMPORTS_PER_SOL

    async def mint(self, name: str, symbol: str, description: str) -> MintResult:
        """Create a new SPL token and mint the initial supply to the wallet.

        Raises MintError on any RPC or transaction failure.
        """
        mint_keypair = Keypair()
        mint = mint_keypair.pubkey()
        owner = self.wallet.pubkey()

        logger.info("📝 Creating SPL token: %s (%s)", name, symbol)
        logger.info("   Description: %s", description)
        logger.info("   Mint address: %s", mint)

        try:
            rent = await self.client.get_minimum_balance_for_rent_exemption(MINT_ACCOUNT_SIZE)
            associated_token = get_associated_token_address(owner, mint)
            instructions = [
                create_account(CreateAccountParams(
                    from_pubkey=owner,
                    to_pubkey=mint,
                    lamports=rent.value,
                    space=MINT_ACCOUNT_SIZE,
                    owner=TOKEN_PROGRAM_ID,
                )),
                initialize_mint(InitializeMintParams(
                    decimals=TOKEN_DECIMALS,
                    mint=mint,
                    mint_authority=owner,
                    freeze_authority=owner,
                    program_id=TOKEN_PROGRAM_ID,
                )),
                create_associated_token_account(owner, owner, mint),
                mint_to(MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    dest=associated_token,
                    mint_authority=owner,
                    amount=INITIAL_SUPPLY * 10 ** TOKEN_DECIMALS,
                )),
            ]
            blockhash = (await self.client.get_latest_blockhash()).value.blockhash
            tx = Transaction.new_signed_with_payer(instructions, owner, [self.wallet, mint_keypair], blockhash)
            sent = await self.client.send_transaction(tx, opts=TxOpts(preflight_commitment=Confirmed))
            signature = sent.value
            await self.client.confirm_transaction(signature, commitment=Confirmed)
        except Exception as e:
            raise MintError(f"{type(e).__name__}: {e}") from e

        return MintResult(mint_address=str(mint), signature=str(signature))

    async def close(self):
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
