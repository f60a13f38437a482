"""Allow running as ``python -m agentdeck``."""

from .cli import main

if __name__ == "__main__":
    main()
