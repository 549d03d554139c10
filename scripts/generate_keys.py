#!/usr/bin/env python3
"""
Generate a signing key for the transaction engine.

This script generates:
- A secp256k1 private key (private_key.hex)
- The derived checksummed address (key_info.json)
"""

import argparse
import json
import os
from pathlib import Path

from txengine.core.identity import generate_identity


def generate_keys(output_dir: str = "./keys") -> dict:
    """
    Generate a new private key.

    Args:
        output_dir: Directory to save keys

    Returns:
        Dictionary with key info and address
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    identity = generate_identity()

    key_path = output_path / "private_key.hex"
    key_path.write_text(identity.private_key + "\n")
    os.chmod(key_path, 0o600)

    info = {
        "private_key_path": str(key_path),
        "address": identity.address,
    }

    info_path = output_path / "key_info.json"
    with open(info_path, "w") as f:
        json.dump(info, f, indent=2)

    return info


def main():
    parser = argparse.ArgumentParser(description="Generate an EVM signing key")
    parser.add_argument(
        "--output-dir", "-o",
        default="./keys",
        help="Output directory for keys (default: ./keys)"
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing keys"
    )

    args = parser.parse_args()

    output_path = Path(args.output_dir)
    key_path = output_path / "private_key.hex"

    if key_path.exists() and not args.force:
        print(f"⚠️  Key already exists at {args.output_dir}")
        print("   Use --force to overwrite")

        info_path = output_path / "key_info.json"
        if info_path.exists():
            with open(info_path) as f:
                info = json.load(f)
            print("\n📋 Existing Key Info:")
            print(f"   Address: {info['address']}")
        return

    print("🔑 Generating new signing key...")
    info = generate_keys(args.output_dir)

    print("\n✅ Key generated successfully!")
    print(f"\n📁 Saved to: {args.output_dir}/")
    print("   - private_key.hex (KEEP SECRET!)")
    print("   - key_info.json")

    print(f"\n📬 Address: {info['address']}")

    print("\n💰 To use it with the engine:")
    print(f"   export TXENGINE_PRIVATE_KEY=$(cat {info['private_key_path']})")
    print("   Fund the address from a Sepolia faucet before sending transfers.")

    print("\n⚠️  IMPORTANT: Never fund this key on mainnet unless it is stored securely!")


if __name__ == "__main__":
    main()
