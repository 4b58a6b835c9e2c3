"""Command-line interface for Game Server Deploy"""

import sys
import argparse
import asyncio
import logging
import os
from pathlib import Path

from .config import ENV_PREFIX
from .core import GameDeploy
from .models import ServerConfig

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamedeploy",
        description="Game Server Deploy - provision game servers from GitHub events"
    )
    parser.add_argument('--config-dir', type=Path, help='Configuration directory (default: ~/.gamedeploy)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('init', help='Initialize configuration, vault and state')

    github_parser = subparsers.add_parser('configure-github', help='Configure the GitHub App')
    github_parser.add_argument('--app-id', required=True, help='GitHub App id')
    github_parser.add_argument('--installation-id', required=True, help='Installation id')
    github_parser.add_argument('--private-key', required=True, type=Path, help='Path to the App private key (PEM)')
    github_parser.add_argument('--deployments-repo', help='owner/repo for deployment records')
    github_parser.add_argument('--webhook-secret', help='Secret for X-Hub-Signature-256 checks')

    provider_parser = subparsers.add_parser('configure-provider', help='Store a hosting provider API token')
    provider_parser.add_argument('provider', help='Provider name (e.g., digitalocean)')
    provider_parser.add_argument('--token', required=True, help='API token')
    provider_parser.add_argument('--default', action='store_true', help='Use as default provider for webhooks')

    deploy_parser = subparsers.add_parser('deploy', help='Deploy a game server')
    deploy_parser.add_argument('name', help='Server name')
    deploy_parser.add_argument('--owner', required=True, help='Owner identity (GitHub login)')
    deploy_parser.add_argument('--provider', help='Hosting provider (default: configured default)')
    deploy_parser.add_argument('--game-type', default='forsaken-rpg', help='Game type')
    deploy_parser.add_argument('--max-players', type=int, default=50, help='Player capacity')
    deploy_parser.add_argument('--region', default='us-east-1', help='Region')
    deploy_parser.add_argument('--port', type=int, default=25565, help='Game port')
    deploy_parser.add_argument('--cpu', type=int, default=2, help='CPU cores')
    deploy_parser.add_argument('--ram', type=int, default=4, help='RAM in GB')
    deploy_parser.add_argument('--storage', type=int, default=20, help='Storage in GB')
    deploy_parser.add_argument('--domain', help='Domain name')
    deploy_parser.add_argument('--timeout', type=float, help='Seconds to wait for the provider')
    deploy_parser.add_argument('--setup-script', type=Path, help='Write the self-hosted setup script here')

    list_parser = subparsers.add_parser('list-servers', help="List an owner's servers")
    list_parser.add_argument('--owner', required=True, help='Owner identity')

    stop_parser = subparsers.add_parser('stop-server', help='Stop a server at its provider')
    stop_parser.add_argument('server_id', help='Server id')

    serve_parser = subparsers.add_parser('serve', help='Run the API server')
    serve_parser.add_argument('--host', default='0.0.0.0', help='Bind address')
    serve_parser.add_argument('--port', type=int, default=8000, help='Bind port')

    return parser


def _deploy(setup: GameDeploy, args) -> int:
    config = ServerConfig.from_dict({
        "name": args.name,
        "game_type": args.game_type,
        "max_players": args.max_players,
        "region": args.region,
        "provider": args.provider or setup.settings.default_provider.value,
        "port": args.port,
        "cpu_cores": args.cpu,
        "ram_gb": args.ram,
        "storage_gb": args.storage,
        "domain": args.domain,
    })

    print(f"🚀 Deploying {config.name} on {config.provider.value}...")
    result = asyncio.run(setup.deploy(config, args.owner, timeout=args.timeout))

    if not result.success:
        print(f"❌ Deployment failed: {result.error_message}")
        return 1

    print("✅ Server deployed")
    print(f"Server ID: {result.server_id}")
    print(f"IP: {result.ip_address}")
    print(f"Port: {result.port}")
    print(f"Status: {result.status.value}")
    if result.domain:
        print(f"Domain: {result.domain}")

    if result.setup_script:
        if args.setup_script:
            args.setup_script.write_text(result.setup_script)
            print(f"Setup script written to {args.setup_script}")
        else:
            print("Re-run with --setup-script <path> to save the host setup script")
    return 0


def _serve(setup: GameDeploy, args) -> int:
    import uvicorn

    # The API builds its own GameDeploy; point it at the same directory
    os.environ[f"{ENV_PREFIX}CONFIG_DIR"] = str(setup.config_dir)
    from .api.server import app

    print(f"🌐 Serving API on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv=None):
    """Main CLI entry point"""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        setup = GameDeploy(args.config_dir)

        if args.command == 'init':
            setup.init()
            print("✅ Game Server Deploy initialized successfully")
            print(f"Configuration directory: {setup.config_dir}")

        elif args.command == 'configure-github':
            setup.configure_github(
                app_id=args.app_id,
                installation_id=args.installation_id,
                private_key=args.private_key.read_text(),
                deployments_repo=args.deployments_repo,
                webhook_secret=args.webhook_secret,
            )
            print(f"✅ GitHub App {args.app_id} configured successfully")

        elif args.command == 'configure-provider':
            setup.configure_provider(args.provider, args.token, make_default=args.default)
            print(f"✅ Provider {args.provider} configured successfully")

        elif args.command == 'deploy':
            return _deploy(setup, args)

        elif args.command == 'list-servers':
            servers = setup.list_servers(args.owner)
            if servers:
                print(f"📋 Servers for {args.owner}:")
                for server in servers:
                    print(f"  • {server.id} {server.name}: {server.ip_address or 'N/A'} "
                          f"({server.status.value}, {server.provider.value})")
            else:
                print("No servers found")

        elif args.command == 'stop-server':
            asyncio.run(setup.stop_server(args.server_id))
            print(f"✅ Server {args.server_id} stopped")

        elif args.command == 'serve':
            return _serve(setup, args)

        return 0

    except Exception as e:
        logger.error(f"Command failed: {e}")
        print(f"❌ Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
