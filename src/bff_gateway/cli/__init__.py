"""CLI for running and checking the BFF auth gateway."""

import argparse
import asyncio
import sys

from bff_gateway.config import get_settings
from bff_gateway.auth.pkce import derive_code_challenge, generate_code_verifier
from bff_gateway.auth.validation import JwksCache, JwksUnavailableError


def print_pkce_pair() -> bool:
    """Print a fresh verifier and its S256 challenge (handy for manual IdP testing)."""
    verifier = generate_code_verifier()
    print(f"code_verifier:  {verifier}")
    print(f"code_challenge: {derive_code_challenge(verifier)}")
    print("method:         S256")
    return True


async def check_keys() -> bool:
    """Fetch the tenant's signing keys and list their ids."""
    settings = get_settings()
    cache = JwksCache(
        settings.oidc_jwks_url,
        cache_seconds=0,
        timeout_seconds=settings.http_timeout_seconds,
    )
    try:
        jwks = await cache.get_jwks()
    except JwksUnavailableError as e:
        print(f"✗ {e}")
        return False
    finally:
        await cache.aclose()

    keys = jwks.get("keys", [])
    print(f"✓ {len(keys)} signing keys at {settings.oidc_jwks_url}")
    for key in keys:
        print(f"    - kid={key.get('kid')} kty={key.get('kty')} use={key.get('use', '-')}")
    print(f"  Expected issuer: {settings.oidc_issuer}")
    return True


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="BFF Auth Gateway CLI",
        prog="bff-gateway",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the gateway with uvicorn")
    serve_parser.add_argument("--host", default=None, help="Bind host (default: SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (default: SERVER_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("pkce", help="Print a PKCE verifier/challenge pair")
    subparsers.add_parser("check-keys", help="Fetch and list the IdP signing keys")

    args = parser.parse_args()

    if args.command == "serve":
        from bff_gateway.main import run

        run(host=args.host, port=args.port, reload=args.reload)

    elif args.command == "pkce":
        sys.exit(0 if print_pkce_pair() else 1)

    elif args.command == "check-keys":
        success = asyncio.run(check_keys())
        sys.exit(0 if success else 1)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
