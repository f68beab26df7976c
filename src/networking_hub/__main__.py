"""Entry point for running Networking Hub as a module.

Usage:
    python -m networking_hub validate-config
    python -m networking_hub serve
    python -m networking_hub --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that need env vars

from networking_hub.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
