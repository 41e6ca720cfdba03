"""Command line interface for checking configuration loading"""
from . import get_settings, get_node_conf
from pathlib import Path

SECRET_KEYS = {'rpcpassword'}

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in get_settings().items():
        print(f"{key}: {value}")

    print("\nNode Configuration:")
    print("-" * 50)
    for key, value in get_node_conf().items():
        print(f"{key}: {'********' if key in SECRET_KEYS else value}")

    # Save example configuration files
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("""[DEFAULT]
# Path to the node configuration directory
node_root = /home/user/.evrmore/
node_conf = evrmore.conf
db_url = postgresql://root@localhost:26257/ledger?sslmode=disable
chain_id = evrmore
coin_units = 8
show_op_return = true
show_algo = false
sync_lookback = 1
""")

    with open(examples_dir / "node.conf.example", "w") as f:
        f.write("""# Node configuration file
server=1
txindex=1
rpcbind=127.0.0.1
rpcport=8819
rpcallowip=127.0.0.1
rpcuser=user
rpcpassword=password
rpcworkqueue=1100
""")

if __name__ == "__main__":
    main()
