"""
Aurora Access Command Line Interface.

Provides commands for generating wallets, signing challenge payloads,
verifying signatures, wrapping content keys and running the API.
"""

import argparse
import base64
import sys
import json
import os
import logging
from typing import List, Optional

from aurora_access import config
from aurora_access.canonical import access_key_message, auth_message
from aurora_access.custody import KeyCustodian, generate_content_key
from aurora_access.errors import AccessError
from aurora_access.keys import WalletKeyPair, generate_wallet
from aurora_access.signature import decode_signature, verify_signature


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def _load_wallet(args: argparse.Namespace) -> Optional[WalletKeyPair]:
    secret = args.key or os.environ.get('AURORA_WALLET_KEY')
    if not secret:
        print("Error: Missing wallet key. Set AURORA_WALLET_KEY or use --key", file=sys.stderr)
        return None
    try:
        return WalletKeyPair.from_base58(secret)
    except ValueError as e:
        print(f"Error: Invalid wallet key: {e}", file=sys.stderr)
        return None


def cmd_init(args: argparse.Namespace) -> int:
    """Generate a new wallet keypair."""
    wallet = generate_wallet()

    if args.env:
        print(f"export AURORA_WALLET_KEY='{wallet.export_secret()}'")
        print(f"# Wallet: {wallet.wallet}", file=sys.stderr)
    else:
        print("NEW WALLET GENERATED\n")
        print(f"Wallet: {wallet.wallet}")
        print("\n--- SECRET KEY (Keep Secret / Set as AURORA_WALLET_KEY) ---")
        print(wallet.export_secret())

    return 0


def cmd_sign_auth(args: argparse.Namespace) -> int:
    """Sign a session challenge."""
    wallet = _load_wallet(args)
    if wallet is None:
        return 1

    signature = wallet.sign_auth(args.nonce)
    if args.json:
        print(json.dumps({"wallet": wallet.wallet, "nonce": args.nonce, "signature": signature}))
    else:
        print(signature)
    return 0


def cmd_sign_access(args: argparse.Namespace) -> int:
    """Sign a key-release challenge."""
    wallet = _load_wallet(args)
    if wallet is None:
        return 1

    signature = wallet.sign_access_key(args.article, args.nonce)
    if args.json:
        print(json.dumps({"articleId": args.article, "nonce": args.nonce, "signature": signature}))
    else:
        print(signature)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a signature over a session or key-release payload."""
    try:
        signature = decode_signature(args.signature)
    except AccessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.article:
        message = access_key_message(args.wallet, args.article, args.nonce)
    else:
        message = auth_message(args.wallet, args.nonce)

    if verify_signature(message, signature, args.wallet):
        print("VALID")
        return 0
    print("INVALID")
    return 1


def cmd_wrap(args: argparse.Namespace) -> int:
    """Wrap a content key under the configured master secret."""
    try:
        if args.content_key:
            content_key = base64.b64decode(args.content_key, validate=True)
        else:
            content_key = generate_content_key()
        blob = KeyCustodian().wrap(content_key)
    except AccessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: content key must be base64: {e}", file=sys.stderr)
        return 1

    print(json.dumps({"key": base64.b64encode(content_key).decode("ascii"), "encryptedKey": blob}))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API."""
    from aurora_access.server import main as serve

    serve(host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='aurora-access',
        description='Aurora Access CLI - wallet-authenticated access control'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # init command
    p_init = subparsers.add_parser('init', help='Generate a new wallet keypair')
    p_init.add_argument('--env', action='store_true', help='Output as environment variables')

    # sign-auth command
    p_auth = subparsers.add_parser('sign-auth', help='Sign a session challenge nonce')
    p_auth.add_argument('--nonce', required=True, help='Challenge nonce')
    p_auth.add_argument('--key', help='Wallet secret key (base58)')
    p_auth.add_argument('--json', action='store_true', help='Output as a JSON request body')

    # sign-access command
    p_access = subparsers.add_parser('sign-access', help='Sign a key-release challenge nonce')
    p_access.add_argument('--article', required=True, help='Article id')
    p_access.add_argument('--nonce', required=True, help='Challenge nonce')
    p_access.add_argument('--key', help='Wallet secret key (base58)')
    p_access.add_argument('--json', action='store_true', help='Output as a JSON request body')

    # verify command
    p_verify = subparsers.add_parser('verify', help='Verify a payload signature')
    p_verify.add_argument('--wallet', required=True, help='Signer wallet (base58)')
    p_verify.add_argument('--nonce', required=True, help='Challenge nonce')
    p_verify.add_argument('--signature', required=True, help='Signature (base64)')
    p_verify.add_argument('--article', help='Article id (key-release payload)')

    # wrap command
    p_wrap = subparsers.add_parser('wrap', help='Wrap a content key under the master secret')
    p_wrap.add_argument('--content-key', help='Base64 content key (generated if omitted)')

    # serve command
    p_serve = subparsers.add_parser('serve', help='Run the HTTP API')
    p_serve.add_argument('--host', default=config.API_HOST, help='Bind address')
    p_serve.add_argument('--port', type=int, default=config.API_PORT, help='Bind port')

    args = parser.parse_args(argv)

    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    if args.command == 'init':
        return cmd_init(args)
    elif args.command == 'sign-auth':
        return cmd_sign_auth(args)
    elif args.command == 'sign-access':
        return cmd_sign_access(args)
    elif args.command == 'verify':
        return cmd_verify(args)
    elif args.command == 'wrap':
        return cmd_wrap(args)
    elif args.command == 'serve':
        return cmd_serve(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
