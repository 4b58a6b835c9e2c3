"""Bootstrap script generation for new game server machines"""

from .models import ServerConfig

ZIG_VERSION = "0.15.1"
ENGINE_REPO = "https://github.com/terminatable/artemis-engine.git"
GAME_REPO = "https://github.com/terminatable/forsaken-game.git"

_BOOTSTRAP = """#!/bin/bash
set -e

# Update system
apt-get update && apt-get upgrade -y

# Install Zig
wget -O zig.tar.xz https://ziglang.org/download/{zig}/zig-linux-x86_64-{zig}.tar.xz
tar -xf zig.tar.xz
mv zig-linux-x86_64-{zig} /opt/zig
ln -s /opt/zig/zig /usr/local/bin/zig

# Clone and build Artemis Engine
git clone {engine_repo} /opt/artemis-engine
cd /opt/artemis-engine
zig build -Drelease-safe

# Clone and build game server
git clone {game_repo} /opt/game-server
cd /opt/game-server
zig build server

# Game settings
cat > /opt/game-server/server.env << EOF
SERVER_NAME={name}
GAME_TYPE={game_type}
MAX_PLAYERS={max_players}
GAME_MODE={game_mode}
DIFFICULTY={difficulty}
PORT={port}
{seed_line}EOF

# Create systemd service
cat > /etc/systemd/system/game-server.service << EOF
[Unit]
Description=Artemis Game Server
After=network.target

[Service]
Type=simple
User=gameserver
WorkingDirectory=/opt/game-server
EnvironmentFile=/opt/game-server/server.env
ExecStart=/opt/game-server/zig-out/bin/server
Restart=always
RestartSec=10

[Install]
WantedBy=multi-user.target
EOF

# Create game server user
useradd -r -s /bin/false gameserver
chown -R gameserver:gameserver /opt/game-server

# Start service
systemctl enable game-server
systemctl start game-server

# Configure firewall
ufw allow {port}
"""


def generate_user_data(config: ServerConfig) -> str:
    """
    Render the cloud-init user-data script for a server

    Args:
        config: Server configuration (port and game settings are templated in)

    Returns:
        Bash script suitable for cloud-init user_data
    """
    seed_line = f"WORLD_SEED={config.world_seed}\n" if config.world_seed is not None else ""
    return _BOOTSTRAP.format(
        zig=ZIG_VERSION,
        engine_repo=ENGINE_REPO,
        game_repo=GAME_REPO,
        name=config.name,
        game_type=config.game_type,
        max_players=config.max_players,
        game_mode=config.game_mode,
        difficulty=config.difficulty,
        port=config.port,
        seed_line=seed_line,
    )
