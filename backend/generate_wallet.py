#!/usr/bin/env python3
"""Generate a fresh devnet wallet for the minter.

Usage:
    python generate_wallet.py

Prints the base58 secret key to put in PRIVATE_KEY and the public address to fund.
"""
from solders.keypair import Keypair


def generate_wallet() -> Keypair:
    return Keypair()


def format_instructions(keypair: Keypair) -> str:
    address = str(keypair.pubkey())
    return "\n".join([
        "🔑 NEW DEVNET WALLET GENERATED",
        "=" * 50,
        "",
        "📝 Add this to your .env file:",
        f"PRIVATE_KEY={keypair}",
        "",
        "🔍 Public Key (wallet address):",
        address,
        "",
        "⚠️  IMPORTANT: Save the private key above!",
        "   You'll need it to sign transactions.",
        "",
        "💰 To fund, run:",
        f"   solana airdrop 2 {address} --url devnet",
        "   (Requires Solana CLI)",
    ])


if __name__ == "__main__":
    print(format_instructions(generate_wallet()))
