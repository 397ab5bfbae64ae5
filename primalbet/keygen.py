"""
Backend Signer Key Generation Tool

Writes a fresh ed25519 keypair in the 64-integer JSON array form the
backend loads from BACKEND_WALLET_PRIVATE_KEY or a keypair file, and prints
the addresses derived for it under a program id.
"""
import argparse
from pathlib import Path

from primalbet.crypto import Keypair
from primalbet.pda import describe_addresses


def generate_keypair_file(output: str, force: bool = False) -> Keypair:
    path = Path(output)
    if path.exists() and not force:
        raise FileExistsError(f"{path} already exists; pass --force to overwrite it")
    keypair = Keypair.generate()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(keypair.to_json())
    return keypair


def main(argv=None):
    parser = argparse.ArgumentParser(description='Generate a backend signer keypair')
    parser.add_argument('--output', type=str, default='backend-keypair.json',
                        help='Where to write the keypair JSON')
    parser.add_argument('--program-id', type=str, help='Program id to derive addresses under')
    parser.add_argument('--force', action='store_true', help='Overwrite an existing file')
    args = parser.parse_args(argv)

    keypair = generate_keypair_file(args.output, args.force)
    print("--- Generated Backend Signer ---")
    print(f"  Address: {keypair.address}")
    print(f"  Saved keypair to: {args.output}")

    if args.program_id:
        addresses = describe_addresses(args.program_id, keypair.public_key)
        print("\n--- Derived Addresses ---")
        print(f"  Game state: {addresses['game_state']}")
        print(f"  Pot vault:  {addresses['pot_vault']}")
        print(f"  Signer ledger: {addresses['player']}")
    return keypair


if __name__ == '__main__':
    main()
