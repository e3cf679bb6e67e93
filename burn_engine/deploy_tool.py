"""
Burn Engine Operator Tool

Creates configuration files, initializes the treasury database, prints
public statistics, and runs simulated ecosystem cycles against the
in-memory exchange.
"""
import json
import hashlib
import argparse
import shutil
import tempfile
from pathlib import Path
from cryptography.hazmat.primitives import serialization

from burn_engine.config import Config
from burn_engine.crypto import generate_key_pair, serialize_public_key, public_key_to_address
from burn_engine.engine import BurnEngine
from burn_engine.pricing import PoolReserves
from burn_engine.simulation import ManualClock


def generate_sample_config(output_path: str, key_path: str):
    """Write a default config and a fresh admin key."""
    config = Config.default()
    config.to_file(output_path)

    priv, pub = generate_key_pair()
    pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    Path(key_path).write_bytes(pem)

    print(f"\nGenerated sample configuration at: {output_path}")
    print(f"Admin key written to: {key_path} (DO NOT USE IN PRODUCTION)")
    print(f"  - Admin address: {public_key_to_address(serialize_public_key(pub)).hex()}")


def _load_admin(key_path: str) -> bytes:
    priv = serialization.load_pem_private_key(Path(key_path).read_bytes(), password=None)
    return public_key_to_address(serialize_public_key(priv.public_key()))


def initialize_treasury(config_path: str, key_path: str):
    """
    Create the treasury record in the configured database.

    Args:
        config_path (str): Path to the JSON configuration.
        key_path (str): PEM private key of the initial admin.
    """
    config = Config.from_file(config_path)
    admin = _load_admin(key_path)
    engine = BurnEngine(db_path=config.database.path, config=config)
    try:
        treasury = engine.initialize(admin)
        print(f"Treasury initialized at {config.database.path}")
        print(f"  - Admin: {treasury.admin.hex()}")
        print(f"  - Custody: {engine.authority.custody_address.hex()}")
        print(f"  - Fee split: {treasury.fee_split_bps} bps")
    finally:
        engine.close()


def show_status(config_path: str):
    config = Config.from_file(config_path)
    engine = BurnEngine(db_path=config.database.path, config=config)
    try:
        print(json.dumps(engine.get_stats(), indent=2))
    finally:
        engine.close()


def _mint(label: str) -> bytes:
    return hashlib.sha256(label.encode()).digest()


def run_simulation(cycles: int, secondaries: int, fees_per_token: int):
    """Drive full ecosystem cycles against simulated collaborators."""
    db_dir = tempfile.mkdtemp()
    clock = ManualClock()
    engine = BurnEngine(db_path=db_dir, clock=clock)
    try:
        admin = _mint("simulated-admin")
        engine.initialize(admin)
        custody = engine.authority.custody_address
        engine.ledger.deposit(custody, 5_000_000)  # rent and buffer

        root = _mint("root")
        mints = [_mint(f"secondary-{i}") for i in range(secondaries)]
        for mint in [root] + mints:
            engine.exchange.add_pool(mint, custody, PoolReserves(
                virtual_quote_reserve=30_000_000_000,
                virtual_base_reserve=1_073_000_000_000_000,
            ))
            engine.cycle.initialize_token_stats(mint)
            engine.validator.initialize_validator(mint, engine.exchange.pool_address(mint))
        engine.governance.set_root_token(admin, root)

        for n in range(cycles):
            clock.advance(seconds=120, slots=300)
            for i, mint in enumerate(mints):
                fees = fees_per_token * (i + 1)
                engine.exchange.accrue_fees(mint, fees)
                validator = engine.store.get_validator(mint)
                engine.validator.register(mint, fees, validator.last_validated_slot + 300, 50)
            engine.exchange.accrue_fees(root, fees_per_token)

            report = engine.run_ecosystem_cycle(admin, mints)
            print(f"\n--- Cycle {n + 1} ---")
            print(json.dumps(report.to_dict(), indent=2))

        print("\nFinal statistics:")
        print(json.dumps(engine.get_stats(), indent=2))
    finally:
        engine.close()
        shutil.rmtree(db_dir)


def main():
    parser = argparse.ArgumentParser(description="Burn Engine Operator Tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample config.json and admin key")
    parser_sample.add_argument("--output", type=str, default="config.json", help="Output file path")
    parser_sample.add_argument("--key", type=str, default="admin_key.pem", help="Admin key output path")

    parser_init = subparsers.add_parser("init", help="Initialize the treasury database")
    parser_init.add_argument("--config", type=str, default="config.json", help="Path to config file")
    parser_init.add_argument("--key", type=str, default="admin_key.pem", help="Admin private key (PEM)")

    parser_status = subparsers.add_parser("status", help="Print treasury and token statistics")
    parser_status.add_argument("--config", type=str, default="config.json", help="Path to config file")

    parser_sim = subparsers.add_parser("simulate", help="Run ecosystem cycles on the in-memory exchange")
    parser_sim.add_argument("--cycles", type=int, default=3, help="Number of cycles")
    parser_sim.add_argument("--secondaries", type=int, default=3, help="Number of secondary tokens")
    parser_sim.add_argument("--fees", type=int, default=20_000_000, help="Base fees per token per cycle")

    args = parser.parse_args()

    if args.command == "sample-config":
        generate_sample_config(args.output, args.key)
    elif args.command == "init":
        initialize_treasury(args.config, args.key)
    elif args.command == "status":
        show_status(args.config)
    elif args.command == "simulate":
        run_simulation(args.cycles, args.secondaries, args.fees)


if __name__ == '__main__':
    main()
